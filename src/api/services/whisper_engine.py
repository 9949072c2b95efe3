"""Speech-to-text engine: faster-whisper when available, canned output otherwise."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Dict, Iterable

try:  # pragma: no cover - optional heavy dependency
    from faster_whisper import WhisperModel  # type: ignore
except Exception:  # pragma: no cover
    WhisperModel = None  # type: ignore

from ..settings import APISettings

LOGGER = logging.getLogger("convrec.api.whisper")

MOCK_CONFIDENCE = 0.92
MOCK_SEGMENTS = (
    (0.0, 2.5, "This is a sample"),
    (2.5, 5.0, "transcription of what would be"),
    (5.0, 8.5, "the conversation content detected by the app."),
)


class WhisperEngine:
    """Transcribes stored audio files into ``{text, confidence, segments}``.

    The model is only constructed on the first real transcription, so a
    server in mock mode never touches faster-whisper at all.
    """

    def __init__(self, settings: APISettings) -> None:
        self.settings = settings
        self.mock = settings.whisper_mock_transcriber or WhisperModel is None
        self._model = None
        self._model_lock = threading.Lock()
        if self.mock:
            LOGGER.warning(
                "Transcription runs in mock mode; install faster-whisper and set "
                "WHISPER_USE_MOCK=0 for real output."
            )

    def transcribe_path(self, path: Path) -> Dict[str, Any]:
        if self.mock:
            return _mock_result()
        segments, info = self._get_model().transcribe(str(path), beam_size=5, vad_filter=True)
        return _collect(segments, info)

    def _get_model(self):
        with self._model_lock:
            if self._model is None:
                LOGGER.info("Loading Whisper model %s on %s", self.settings.whisper_model, self.settings.whisper_device)
                try:
                    self._model = WhisperModel(
                        self.settings.whisper_model,
                        device=self.settings.whisper_device,
                        compute_type=self.settings.whisper_compute_type,
                    )
                except Exception as exc:  # pragma: no cover - hardware/env dep
                    LOGGER.error("Failed to load Whisper model '%s': %s", self.settings.whisper_model, exc)
                    raise
            return self._model


def _mock_result() -> Dict[str, Any]:
    return {
        "text": " ".join(text for _, _, text in MOCK_SEGMENTS),
        "confidence": MOCK_CONFIDENCE,
        "segments": [{"start": start, "end": end, "text": text} for start, end, text in MOCK_SEGMENTS],
    }


def _collect(segments: Iterable, info) -> Dict[str, Any]:
    pieces = [
        {
            "start": float(getattr(segment, "start", 0.0) or 0.0),
            "end": float(getattr(segment, "end", 0.0) or 0.0),
            "text": segment.text.strip(),
        }
        for segment in segments
        if segment.text.strip()
    ]
    return {
        "text": " ".join(piece["text"] for piece in pieces),
        "confidence": getattr(info, "language_probability", None),
        "segments": pieces,
    }
