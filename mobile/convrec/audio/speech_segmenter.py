"""WebRTC VAD speech detection used as the on-device conversation model."""

from __future__ import annotations

import numpy as np

from ..errors import GateError
from .types import SpeechWindow

try:  # Optional dependency; without it the gate falls back to energy detection.
    import webrtcvad
except Exception:  # pragma: no cover - best effort import
    webrtcvad = None

SUPPORTED_RATES = (8000, 16000, 32000, 48000)


class SpeechSegmenter:
    """Detect speech windows in int16 PCM with WebRTC VAD."""

    def __init__(
        self,
        *,
        vad_aggressiveness: int = 2,
        min_speech_ms: int = 250,
        min_gap_ms: int = 250,
        frame_ms: int = 30,
    ) -> None:
        if webrtcvad is None:
            raise GateError("webrtcvad is not installed")
        self.frame_ms = frame_ms
        self.min_speech_ms = min_speech_ms
        self.min_gap_ms = min_gap_ms
        self._vad = webrtcvad.Vad(min(max(int(vad_aggressiveness), 0), 3))

    def windows(self, pcm: np.ndarray, sample_rate: int) -> list[SpeechWindow]:
        mono = self._ensure_mono(pcm)
        frame_len = self._frame_length(sample_rate)
        spans = self._merge(self._detect(mono, sample_rate, frame_len), sample_rate)
        min_samples = self._ms_to_samples(self.min_speech_ms, sample_rate)
        return [
            SpeechWindow(
                start_ms=self._samples_to_ms(start, sample_rate),
                end_ms=self._samples_to_ms(end, sample_rate),
            )
            for start, end in spans
            if end - start >= min_samples
        ]

    def speech_ratio(self, pcm: np.ndarray, sample_rate: int) -> float:
        """Fraction of the buffer covered by speech windows, in [0, 1]."""
        mono = self._ensure_mono(pcm)
        if mono.size == 0:
            return 0.0
        total_ms = self._samples_to_ms(len(mono), sample_rate)
        if total_ms <= 0:
            return 0.0
        speech_ms = sum(window.end_ms - window.start_ms for window in self.windows(mono, sample_rate))
        return max(0.0, min(1.0, speech_ms / total_ms))

    def _detect(self, samples: np.ndarray, sample_rate: int, frame_len: int) -> list[tuple[int, int]]:
        segments: list[tuple[int, int]] = []
        start: int | None = None
        end = 0
        for offset in range(0, len(samples) - frame_len + 1, frame_len):
            frame = samples[offset : offset + frame_len]
            try:
                speech = self._vad.is_speech(frame.tobytes(), sample_rate)
            except Exception as exc:
                raise GateError(f"VAD inference failed: {exc}") from exc
            if speech:
                if start is None:
                    start = offset
                end = offset + frame_len
            elif start is not None:
                segments.append((start, end))
                start = None
        if start is not None:
            segments.append((start, end))
        return segments

    def _merge(self, segments: list[tuple[int, int]], sample_rate: int) -> list[tuple[int, int]]:
        if not segments:
            return []
        gap = self._ms_to_samples(self.min_gap_ms, sample_rate)
        merged: list[tuple[int, int]] = []
        cur_start, cur_end = segments[0]
        for start, end in segments[1:]:
            if start - cur_end <= gap:
                cur_end = max(cur_end, end)
            else:
                merged.append((cur_start, cur_end))
                cur_start, cur_end = start, end
        merged.append((cur_start, cur_end))
        return merged

    def _frame_length(self, sample_rate: int) -> int:
        if sample_rate not in SUPPORTED_RATES:
            raise GateError(f"Unsupported sample rate for VAD: {sample_rate}")
        return self._ms_to_samples(self.frame_ms, sample_rate)

    def _ensure_mono(self, pcm: np.ndarray) -> np.ndarray:
        data = np.asarray(pcm)
        if data.ndim == 1:
            return data.astype(np.int16, copy=False)
        return data[:, 0].astype(np.int16, copy=False)

    @staticmethod
    def _ms_to_samples(duration_ms: int, sample_rate: int) -> int:
        return max(1, int(sample_rate * (duration_ms / 1000.0)))

    @staticmethod
    def _samples_to_ms(sample_idx: int, sample_rate: int) -> int:
        return int(sample_idx * 1000 / sample_rate)


__all__ = ["SpeechSegmenter", "SUPPORTED_RATES"]
