"""Pytest configuration helpers."""

from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path

import numpy as np
import pytest
import soundfile as sf


def _ensure_repo_on_path() -> None:
    """Allow tests to import from repo modules without setting PYTHONPATH."""
    repo_root = Path(__file__).resolve().parents[1]
    path_str = str(repo_root)
    if path_str not in sys.path:
        sys.path.insert(0, path_str)


_ensure_repo_on_path()

from mobile.convrec.audio.capture import CaptureHandle  # noqa: E402
from mobile.convrec.audio.types import Segment, SegmentState  # noqa: E402
from mobile.convrec.errors import DeviceError, StorageError  # noqa: E402

SAMPLE_RATE = 16_000


def write_wav(path: Path, amplitude: int = 1500, seconds: float = 0.5) -> Path:
    """Write a constant-amplitude int16 WAV whose RMS equals ``amplitude``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    samples = np.full(int(SAMPLE_RATE * seconds), amplitude, dtype=np.int16)
    sf.write(str(path), samples, SAMPLE_RATE, format="WAV", subtype="PCM_16")
    return path


def make_segment(tmp_path: Path, amplitude: int = 1500, index: int = 0, session_id: str = "session-1") -> Segment:
    path = write_wav(tmp_path / f"segment_{index:04d}.wav", amplitude)
    return Segment(
        id=f"seg-{session_id}-{index}",
        session_id=session_id,
        index=index,
        file_path=str(path),
        start_offset_ms=index * 30_000,
        started_at=datetime(2024, 1, 1, 0, 0, index, tzinfo=timezone.utc),
        duration_ms=30_000,
        state=SegmentState.PENDING_DECISION,
    )


class FakeCapture:
    """Capture device whose elapsed position is set by the test."""

    def __init__(self, amplitude: int = 1500) -> None:
        self.amplitude = amplitude
        self.elapsed_ms = 0
        self.fail_open = False
        self.opened: list[Path] = []
        self.closed: list[Path] = []

    def open(self, path: Path) -> CaptureHandle:
        if self.fail_open:
            raise DeviceError("microphone permission denied")
        write_wav(Path(path), self.amplitude)
        self.elapsed_ms = 0
        self.opened.append(Path(path))
        return CaptureHandle(path=Path(path), sample_rate=SAMPLE_RATE)

    def position(self, handle: CaptureHandle) -> int:  # noqa: ARG002
        return self.elapsed_ms

    def close(self, handle: CaptureHandle) -> Path:
        self.closed.append(handle.path)
        return handle.path


class FakeClient:
    """Upload client recording every call; fails the first ``failures`` uploads."""

    def __init__(self, failures: int = 0) -> None:
        self.failures = failures
        self.calls: list[str] = []
        self.closed = False

    async def upload_segment(self, segment: Segment) -> dict:
        assert Path(segment.file_path).exists(), "segment deleted before upload"
        self.calls.append(segment.file_path)
        if self.failures:
            self.failures -= 1
            raise StorageError("Upload failed: 503")
        return {
            "success": True,
            "recordingId": f"rec-{len(self.calls)}",
            "message": "Audio uploaded successfully",
            "transcriptionJobId": f"job-rec-{len(self.calls)}",
        }

    async def fetch_transcript(self, recording_id: str):
        return {"text": f"transcript for {recording_id}"}

    async def close(self) -> None:
        self.closed = True


class StaticGate:
    def __init__(self, verdict: bool = True) -> None:
        self.verdict = verdict
        self.seen: list[str] = []

    async def detect(self, segment: Segment) -> bool:
        self.seen.append(segment.id)
        return self.verdict


@pytest.fixture()
def fake_capture() -> FakeCapture:
    return FakeCapture()


@pytest.fixture()
def fake_client() -> FakeClient:
    return FakeClient()
