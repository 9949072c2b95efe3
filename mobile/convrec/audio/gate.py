"""Conversation gate: model verdict with an energy fallback."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Callable, Optional, Protocol

import numpy as np
import soundfile as sf

from ..config import CONFIG
from ..errors import GateError
from ..services.logger import LogBuffer
from .speech_segmenter import SpeechSegmenter
from .types import Segment


class ConversationModel(Protocol):
    def score(self, pcm: np.ndarray, sample_rate: int) -> float: ...


class SpeechActivityModel:
    """Scores a segment by the share of it WebRTC VAD marks as speech."""

    def __init__(self, segmenter: SpeechSegmenter) -> None:
        self.segmenter = segmenter

    def score(self, pcm: np.ndarray, sample_rate: int) -> float:
        return self.segmenter.speech_ratio(pcm, sample_rate)


def load_speech_model(vad_aggressiveness: int = 2) -> SpeechActivityModel:
    return SpeechActivityModel(SpeechSegmenter(vad_aggressiveness=vad_aggressiveness))


def read_pcm(path: str | Path) -> tuple[np.ndarray, int]:
    try:
        data, sample_rate = sf.read(str(path), dtype="int16", always_2d=False)
    except (OSError, RuntimeError) as exc:
        raise GateError(f"Cannot read {Path(path).name}: {exc}") from exc
    data = np.asarray(data)
    if data.ndim > 1:
        data = data[:, 0]
    return data, int(sample_rate)


class EnergyGate:
    def __init__(self, threshold: float = 1000.0) -> None:
        self.threshold = float(threshold)

    @staticmethod
    def energy(pcm: np.ndarray) -> float:
        """Root-mean-square amplitude in int16 units."""
        if pcm.size == 0:
            return 0.0
        samples = pcm.astype(np.float64, copy=False)
        return float(np.sqrt(np.mean(samples * samples)))

    def evaluate(self, pcm: np.ndarray, sample_rate: int) -> bool:  # noqa: ARG002
        return self.energy(pcm) > self.threshold


class ModelGate:
    def __init__(self, model: ConversationModel, threshold: float = 0.7) -> None:
        self.model = model
        self.threshold = float(threshold)

    def evaluate(self, pcm: np.ndarray, sample_rate: int) -> bool:
        try:
            score = float(self.model.score(pcm, sample_rate))
        except GateError:
            raise
        except Exception as exc:
            raise GateError(f"Model inference failed: {exc}") from exc
        return score > self.threshold


class ConversationGate:
    """Produces a keep/discard verdict for a finished segment.

    The model variant is used once the asynchronous load has finished; until
    then, and after a failed load, the energy variant answers and the next call
    schedules another load attempt. Any failure while detecting keeps the
    segment.
    """

    def __init__(
        self,
        logger: LogBuffer,
        *,
        model_loader: Optional[Callable[[], ConversationModel]] = load_speech_model,
        threshold: float | None = None,
        energy_threshold: float | None = None,
        enabled: bool = True,
    ) -> None:
        self.logger = logger
        self.model_loader = model_loader
        self.enabled = enabled
        self._model_gate: Optional[ModelGate] = None
        self._threshold = CONFIG.model_threshold if threshold is None else float(threshold)
        self._energy_gate = EnergyGate(CONFIG.energy_threshold if energy_threshold is None else energy_threshold)
        self._load_task: Optional[asyncio.Task] = None
        self.load_attempts = 0

    @property
    def model_ready(self) -> bool:
        return self._model_gate is not None

    def set_thresholds(self, *, threshold: float | None = None, energy_threshold: float | None = None) -> None:
        if threshold is not None:
            self._threshold = float(threshold)
            if self._model_gate:
                self._model_gate.threshold = self._threshold
        if energy_threshold is not None:
            self._energy_gate.threshold = float(energy_threshold)

    def start_loading(self) -> Optional[asyncio.Task]:
        if self._model_gate is not None or self.model_loader is None:
            return None
        if self._load_task is not None and not self._load_task.done():
            return self._load_task
        self._load_task = asyncio.create_task(self._load())
        return self._load_task

    async def _load(self) -> None:
        self.load_attempts += 1
        try:
            model = await asyncio.to_thread(self.model_loader)
        except Exception as exc:
            self.logger.warning(f"Conversation model unavailable ({exc}); using energy gate")
            return
        self._model_gate = ModelGate(model, self._threshold)
        self.logger.add("Conversation model loaded")

    def select(self) -> ModelGate | EnergyGate:
        return self._model_gate or self._energy_gate

    async def detect(self, segment: Segment) -> bool:
        if not self.enabled:
            return True
        if self._model_gate is None:
            self.start_loading()
        variant = self.select()
        try:
            pcm, sample_rate = await asyncio.to_thread(read_pcm, segment.file_path)
            verdict = await asyncio.to_thread(variant.evaluate, pcm, sample_rate)
        except Exception as exc:
            self.logger.warning(f"Detection failed for segment {segment.index} ({exc}); keeping it")
            return True
        name = "model" if isinstance(variant, ModelGate) else "energy"
        self.logger.add(f"Segment {segment.index}: {name} gate says {'conversation' if verdict else 'silence'}")
        return bool(verdict)


__all__ = [
    "ConversationGate",
    "ConversationModel",
    "EnergyGate",
    "ModelGate",
    "SpeechActivityModel",
    "load_speech_model",
    "read_pcm",
]
