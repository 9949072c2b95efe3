"""Dataclasses shared across the recording pipeline."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import List, Optional


class SegmentState(str, Enum):
    RECORDING = "recording"
    PENDING_DECISION = "pending_decision"
    UPLOADING = "uploading"
    UPLOADED = "uploaded"
    DISCARDED = "discarded"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (SegmentState.UPLOADED, SegmentState.DISCARDED, SegmentState.FAILED)


@dataclass(slots=True)
class SpeechWindow:
    """Relative speech window (milliseconds offset within the segment)."""

    start_ms: int
    end_ms: int


@dataclass(slots=True)
class Segment:
    """One bounded-duration chunk of recorded audio."""

    id: str
    session_id: str
    index: int
    file_path: str
    start_offset_ms: int
    started_at: datetime
    duration_ms: int = 0
    state: SegmentState = SegmentState.RECORDING
    recording_id: Optional[str] = None
    transcription_job_id: Optional[str] = None
    last_error: Optional[str] = None

    @property
    def file_name(self) -> str:
        return Path(self.file_path).name

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "index": self.index,
            "path": self.file_path,
            "start_offset_ms": self.start_offset_ms,
            "started_at": self.started_at.astimezone(timezone.utc).isoformat().replace("+00:00", "Z"),
            "duration_ms": self.duration_ms,
            "state": self.state.value,
            "recording_id": self.recording_id,
            "transcription_job_id": self.transcription_job_id,
            "last_error": self.last_error,
        }

    @classmethod
    def from_dict(cls, raw: dict) -> "Segment":
        started = str(raw.get("started_at") or "")
        try:
            started_at = datetime.fromisoformat(started.replace("Z", "+00:00"))
        except ValueError:
            started_at = datetime.now(timezone.utc)
        return cls(
            id=str(raw["id"]),
            session_id=str(raw.get("session_id", "")),
            index=int(raw.get("index", 0)),
            file_path=str(raw["path"]),
            start_offset_ms=int(raw.get("start_offset_ms", 0)),
            started_at=started_at,
            duration_ms=int(raw.get("duration_ms", 0)),
            state=SegmentState(raw.get("state", SegmentState.PENDING_DECISION.value)),
            recording_id=raw.get("recording_id"),
            transcription_job_id=raw.get("transcription_job_id"),
            last_error=raw.get("last_error"),
        )


@dataclass(slots=True)
class RecordingSession:
    """Owns every Segment created during one start/stop recording run."""

    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    is_active: bool = False
    segments: List[Segment] = field(default_factory=list)
    total_elapsed_ms: int = 0
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def current(self) -> Optional[Segment]:
        if self.segments and self.segments[-1].state is SegmentState.RECORDING:
            return self.segments[-1]
        return None

    def recording_count(self) -> int:
        return sum(1 for segment in self.segments if segment.state is SegmentState.RECORDING)


__all__ = ["RecordingSession", "Segment", "SegmentState", "SpeechWindow"]
