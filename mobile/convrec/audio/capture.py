"""Capture device boundary backed by sounddevice + soundfile."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Protocol

import numpy as np
import soundfile as sf

from ..errors import DeviceError


@dataclass
class CaptureHandle:
    """Open capture writing into a single segment file."""

    path: Path
    sample_rate: int
    stream: Any = None
    sink: Optional[sf.SoundFile] = None
    frames: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def elapsed_ms(self) -> int:
        with self._lock:
            return int(self.frames * 1000 / self.sample_rate)


class CaptureDevice(Protocol):
    def open(self, path: Path) -> CaptureHandle: ...

    def position(self, handle: CaptureHandle) -> int: ...

    def close(self, handle: CaptureHandle) -> Path: ...


class SoundDeviceCapture:
    """Microphone capture streaming int16 PCM into a WAV file per segment."""

    def __init__(self, sample_rate: int, channels: int = 1, *, device: str | int | None = None) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self.device = device
        self._sd = self._try_import_sounddevice()

    def _try_import_sounddevice(self):
        try:
            import sounddevice as sd  # type: ignore

            return sd
        except Exception:
            return None

    def open(self, path: Path) -> CaptureHandle:
        if self._sd is None:
            raise DeviceError("sounddevice is not available; install PortAudio and sounddevice")
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        handle = CaptureHandle(path=path, sample_rate=self.sample_rate)
        try:
            handle.sink = sf.SoundFile(
                str(path),
                mode="w",
                samplerate=self.sample_rate,
                channels=self.channels,
                format="WAV",
                subtype="PCM_16",
            )
        except (OSError, RuntimeError) as exc:
            raise DeviceError(f"Cannot open segment file {path.name}: {exc}") from exc

        def _callback(indata, frames, _time, status) -> None:  # noqa: ARG001
            samples = np.asarray(indata, dtype=np.int16)
            with handle._lock:
                if handle.sink is None or handle.sink.closed:
                    return
                handle.sink.write(samples)
                handle.frames += frames

        try:
            handle.stream = self._sd.InputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype="int16",
                device=self.device,
                callback=_callback,
            )
            handle.stream.start()
        except Exception as exc:
            handle.sink.close()
            path.unlink(missing_ok=True)
            raise DeviceError(f"Capture device unavailable: {exc}") from exc
        return handle

    def position(self, handle: CaptureHandle) -> int:
        return handle.elapsed_ms()

    def close(self, handle: CaptureHandle) -> Path:
        error: Exception | None = None
        if handle.stream is not None:
            try:
                handle.stream.stop()
                handle.stream.close()
            except Exception as exc:
                error = exc
            handle.stream = None
        with handle._lock:
            if handle.sink is not None and not handle.sink.closed:
                handle.sink.close()
        if error is not None:
            raise DeviceError(f"Failed to stop capture: {error}") from error
        return handle.path


__all__ = ["CaptureDevice", "CaptureHandle", "SoundDeviceCapture"]
