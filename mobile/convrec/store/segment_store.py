"""Persistent record of segment files and their processing state."""

from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Dict, List, Optional

from ..audio.types import Segment, SegmentState
from ..config import CONFIG

IN_FLIGHT = (SegmentState.RECORDING, SegmentState.PENDING_DECISION, SegmentState.UPLOADING)


class SegmentStore:
    """JSON-backed table of segments keyed by id.

    Discarded segments are forgotten; uploaded ones are kept (without their
    audio) so transcripts can still be looked up by recording id.
    """

    def __init__(self, path: Path, *, max_attempts: int | None = None) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.max_attempts = max_attempts or CONFIG.max_upload_attempts
        self._data: Dict[str, Dict] = self._load()

    def add(self, segment: Segment) -> None:
        entry = segment.to_dict()
        entry["attempts"] = 0
        entry["retry_pending"] = False
        entry["updated_at"] = time.time()
        self._data[segment.id] = entry
        self._persist()

    def update(self, segment: Segment) -> None:
        entry = self._data.get(segment.id)
        if entry is None:
            self.add(segment)
            return
        entry.update(segment.to_dict())
        entry["updated_at"] = time.time()
        self._persist()

    def get(self, segment_id: str) -> Optional[Dict]:
        entry = self._data.get(segment_id)
        return dict(entry) if entry else None

    def mark_uploaded(self, segment: Segment) -> None:
        self.update(segment)
        entry = self._data[segment.id]
        entry["attempts"] += 1
        entry["retry_pending"] = False
        self._persist()

    def mark_failed(self, segment: Segment, error: str) -> bool:
        """Record a failed upload; returns True when a retry remains."""
        segment.last_error = error[-200:]
        self.update(segment)
        entry = self._data[segment.id]
        entry["attempts"] += 1
        entry["retry_pending"] = entry["attempts"] < self.max_attempts
        self._persist()
        return entry["retry_pending"]

    def mark_unrecoverable(self, segment: Segment, error: str) -> None:
        segment.last_error = error[-200:]
        self.update(segment)
        self._data[segment.id]["retry_pending"] = False
        self._persist()

    def remove(self, segment_id: str) -> None:
        if self._data.pop(segment_id, None) is not None:
            self._persist()

    def pending_retries(self) -> List[Segment]:
        return [
            Segment.from_dict(entry)
            for entry in self._sorted()
            if entry.get("state") == SegmentState.FAILED.value and entry.get("retry_pending")
        ]

    def unprocessed(self) -> List[Segment]:
        states = {state.value for state in IN_FLIGHT}
        return [Segment.from_dict(entry) for entry in self._sorted() if entry.get("state") in states]

    def uploaded(self) -> List[Segment]:
        return [
            Segment.from_dict(entry)
            for entry in self._sorted()
            if entry.get("state") == SegmentState.UPLOADED.value
        ]

    def list(self) -> List[Dict]:
        return [dict(entry) for entry in self._sorted()]

    def __len__(self) -> int:
        return len(self._data)

    def _sorted(self) -> List[Dict]:
        return sorted(self._data.values(), key=lambda item: (item.get("started_at", ""), item.get("index", 0)))

    def _load(self) -> Dict[str, Dict]:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except Exception:
            return {}
        if not isinstance(raw, list):
            return {}
        return {str(item["id"]): item for item in raw if isinstance(item, dict) and "id" in item}

    def _persist(self) -> None:
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(list(self._data.values()), ensure_ascii=False), encoding="utf-8")
        tmp.replace(self.path)


__all__ = ["SegmentStore"]
