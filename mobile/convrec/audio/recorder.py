"""Continuous recorder that rolls capture into fixed-length segments."""

from __future__ import annotations

import asyncio
import contextlib
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from ..config import CONFIG
from ..errors import DeviceError, NoActiveRecordingError
from ..services.logger import LogBuffer
from .capture import CaptureDevice, CaptureHandle
from .types import RecordingSession, Segment, SegmentState


class SegmentRecorder:
    """Drives the capture device and hands finished segments to ``on_segment``.

    Rollover and stop never suspend between checking the session and handing
    the closed segment off, so on the single event loop they cannot interleave:
    whichever runs first terminates the capture and the other finds nothing
    left to close.
    """

    def __init__(
        self,
        device: CaptureDevice,
        output_dir: Path,
        on_segment: Callable[[Segment], None],
        logger: LogBuffer,
        *,
        segment_length_ms: int | None = None,
        poll_interval_ms: int | None = None,
    ) -> None:
        self.device = device
        self.output_dir = Path(output_dir)
        self.on_segment = on_segment
        self.logger = logger
        self.segment_length_ms = max(1, int(segment_length_ms or CONFIG.segment_length_ms))
        self.poll_interval_ms = max(1, int(poll_interval_ms or CONFIG.poll_interval_ms))
        self._session: Optional[RecordingSession] = None
        self._handle: Optional[CaptureHandle] = None
        self._poll_task: Optional[asyncio.Task] = None
        # audio captured past the last rollover boundary, owed to the open segment
        self._carry_ms = 0

    @property
    def session(self) -> Optional[RecordingSession]:
        return self._session

    def set_segment_length(self, value_ms: int) -> None:
        self.segment_length_ms = max(1, int(value_ms))

    async def start(self, session: RecordingSession) -> Segment:
        if self._session is not None and self._session.is_active:
            raise DeviceError("Capture device is busy with another recording")
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self._carry_ms = 0
        segment = self._open_segment(session)
        session.is_active = True
        self._session = session
        self._poll_task = asyncio.create_task(self._poll(session))
        self.logger.add(f"Recording started ({session.id[:6]})")
        return segment

    async def stop(self, session: RecordingSession | None) -> Optional[Segment]:
        if session is None or not session.is_active or session is not self._session:
            raise NoActiveRecordingError("No recording in progress")
        session.is_active = False
        self._session = None
        handle, self._handle = self._handle, None
        current = session.current
        finished: Optional[Segment] = None
        if current is not None and handle is not None:
            elapsed = self._safe_position(handle, default=None)
            if elapsed == 0:
                self._drop_empty(session, current, handle)
            else:
                # a stop the poll has not caught up with still closes one window at most
                duration = min((elapsed or 0) + self._carry_ms, self.segment_length_ms)
                finished = self._finish_segment(session, current, handle, duration)
        self._carry_ms = 0
        await self._cancel_poll()
        self.logger.add(
            f"Recording stopped ({session.id[:6]}): {len(session.segments)} segment(s), "
            f"{session.total_elapsed_ms} ms"
        )
        return finished

    async def poll_once(self, session: RecordingSession) -> Optional[Segment]:
        handle = self._handle
        if handle is None or not session.is_active:
            return None
        return await self.on_position(session, self._safe_position(handle))

    async def on_position(self, session: RecordingSession, elapsed_ms: int) -> Optional[Segment]:
        if not session.is_active or session is not self._session:
            return None
        elapsed_ms += self._carry_ms
        if elapsed_ms < self.segment_length_ms:
            return None
        current = session.current
        handle = self._handle
        if current is None or handle is None:
            return None
        self._handle = None
        self._carry_ms = min(elapsed_ms - self.segment_length_ms, self.segment_length_ms - 1)
        finished = self._finish_segment(session, current, handle, self.segment_length_ms)
        try:
            self._open_segment(session)
        except DeviceError as exc:
            self.logger.error(f"Rollover failed, recording ended: {exc}")
            session.is_active = False
            self._session = None
            await self._cancel_poll()
        return finished

    def _open_segment(self, session: RecordingSession) -> Segment:
        index = len(session.segments)
        path = self.output_dir / f"segment_{session.id[:8]}_{index:04d}.wav"
        handle = self.device.open(path)
        segment = Segment(
            id=uuid.uuid4().hex,
            session_id=session.id,
            index=index,
            file_path=str(path),
            start_offset_ms=session.total_elapsed_ms,
            started_at=datetime.now(timezone.utc),
        )
        self._handle = handle
        session.segments.append(segment)
        return segment

    def _finish_segment(
        self,
        session: RecordingSession,
        segment: Segment,
        handle: CaptureHandle,
        elapsed_ms: int,
    ) -> Segment:
        try:
            self.device.close(handle)
        except DeviceError as exc:
            self.logger.warning(f"Segment {segment.index} closed uncleanly: {exc}")
        segment.duration_ms = int(elapsed_ms)
        segment.state = SegmentState.PENDING_DECISION
        session.total_elapsed_ms += segment.duration_ms
        self.on_segment(segment)
        return segment

    def _drop_empty(self, session: RecordingSession, segment: Segment, handle: CaptureHandle) -> None:
        try:
            self.device.close(handle)
        except DeviceError as exc:
            self.logger.warning(f"Empty segment {segment.index} closed uncleanly: {exc}")
        Path(segment.file_path).unlink(missing_ok=True)
        session.segments.remove(segment)

    def _safe_position(self, handle: CaptureHandle, default: Optional[int] = 0) -> Optional[int]:
        try:
            return int(self.device.position(handle))
        except Exception as exc:
            self.logger.warning(f"Position unavailable: {exc}")
            return default

    async def _poll(self, session: RecordingSession) -> None:
        interval = self.poll_interval_ms / 1000.0
        while session.is_active:
            await asyncio.sleep(interval)
            if not session.is_active:
                break
            await self.poll_once(session)

    async def _cancel_poll(self) -> None:
        task, self._poll_task = self._poll_task, None
        if task is None or task is asyncio.current_task():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task


__all__ = ["SegmentRecorder"]
