"""Per-segment pipeline: gate, then upload or discard."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import List, Set

from ..audio.gate import ConversationGate
from ..audio.types import Segment, SegmentState
from ..errors import FileSystemError, StorageError
from ..store.segment_store import SegmentStore
from .logger import LogBuffer
from .network import ApiClient


class UploadPipeline:
    """Drives each handed-off segment to a terminal state on its own task."""

    def __init__(
        self,
        gate: ConversationGate,
        client: ApiClient,
        store: SegmentStore,
        logger: LogBuffer,
    ) -> None:
        self.gate = gate
        self.client = client
        self.store = store
        self.logger = logger
        self._tasks: Set[asyncio.Task] = set()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def submit(self, segment: Segment) -> asyncio.Task:
        segment.state = SegmentState.PENDING_DECISION
        self.store.update(segment)
        return self._spawn(self.process(segment))

    async def process(self, segment: Segment) -> SegmentState:
        verdict = await self.gate.detect(segment)
        if not verdict:
            return self._discard(segment)
        return await self._upload(segment)

    async def retry_failed(self) -> List[SegmentState]:
        """Give every failed segment its single deferred upload retry."""
        segments = self.store.pending_retries()
        if segments:
            self.logger.add(f"Retrying {len(segments)} failed segment(s)")
        results: List[SegmentState] = []
        for segment in segments:
            if not Path(segment.file_path).exists():
                self.store.mark_unrecoverable(segment, "segment file missing")
                self.logger.error(f"Segment {segment.id[:6]} cannot be retried: file missing")
                results.append(segment.state)
                continue
            results.append(await self._upload(segment))
        return results

    def recover(self) -> List[asyncio.Task]:
        """Resubmit segments that were mid-pipeline when the app last exited."""
        tasks = []
        for segment in self.store.unprocessed():
            if not Path(segment.file_path).exists():
                self.store.remove(segment.id)
                continue
            self.logger.add(f"Resuming segment {segment.id[:6]}")
            tasks.append(self.submit(segment))
        return tasks

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _upload(self, segment: Segment) -> SegmentState:
        segment.state = SegmentState.UPLOADING
        self.store.update(segment)
        try:
            self.logger.add(f"Uploading segment {segment.index} ({segment.id[:6]})...")
            response = await self.client.upload_segment(segment)
        except (StorageError, FileSystemError) as exc:
            segment.state = SegmentState.FAILED
            retry = self.store.mark_failed(segment, str(exc))
            suffix = "retry scheduled for next launch" if retry else "no retries left"
            self.logger.error(f"Upload failed ({segment.id[:6]}): {exc}; {suffix}")
            return segment.state
        segment.recording_id = response.get("recordingId")
        segment.transcription_job_id = response.get("transcriptionJobId")
        segment.state = SegmentState.UPLOADED
        self.store.mark_uploaded(segment)
        self._release(segment)
        self.logger.add(f"Segment {segment.index} uploaded as {segment.recording_id}")
        return segment.state

    def _discard(self, segment: Segment) -> SegmentState:
        try:
            _delete(segment)
        except FileSystemError as exc:
            segment.state = SegmentState.FAILED
            self.store.mark_unrecoverable(segment, str(exc))
            self.logger.error(str(exc))
            return segment.state
        segment.state = SegmentState.DISCARDED
        self.store.remove(segment.id)
        self.logger.add(f"No conversation in segment {segment.index}; deleted")
        return segment.state

    def _release(self, segment: Segment) -> None:
        try:
            _delete(segment)
        except FileSystemError as exc:
            self.logger.warning(f"Uploaded segment kept on disk: {exc}")

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._finished)
        return task

    def _finished(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.logger.error(f"Segment pipeline crashed: {exc!r}")


def _delete(segment: Segment) -> None:
    try:
        Path(segment.file_path).unlink(missing_ok=True)
    except OSError as exc:
        raise FileSystemError(f"Cannot delete {segment.file_name}: {exc}") from exc


__all__ = ["UploadPipeline"]
