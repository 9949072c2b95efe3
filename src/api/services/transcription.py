"""Transcription job queue drained by a background worker."""

from __future__ import annotations

import asyncio
import json
import logging
import tempfile
from collections import OrderedDict
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Set

from ..metrics import TRANSCRIPTION_COUNTER, TRANSCRIPTION_QUEUE_DEPTH
from ..schemas import TranscriptionJob, TranscriptionResult
from .storage import ObjectStore
from .whisper_engine import WhisperEngine

LOGGER = logging.getLogger("convrec.api.transcription")


def transcript_key(recording_id: str) -> str:
    return f"transcripts/{recording_id}.json"


def error_key(recording_id: str) -> str:
    return f"errors/{recording_id}.json"


class TranscriptionQueue:
    """Accepts stored audio keys and turns them into transcript objects."""

    def __init__(
        self,
        store: ObjectStore,
        engine: WhisperEngine,
        *,
        delay_sec: float = 0.0,
        history: int = 1000,
    ) -> None:
        self.store = store
        self.engine = engine
        self.delay_sec = max(0.0, float(delay_sec))
        self.history = max(0, int(history))
        self.jobs: "OrderedDict[str, TranscriptionJob]" = OrderedDict()
        self._queue: Optional[asyncio.Queue] = None
        self._tasks: Set[asyncio.Task] = set()
        # one transcription at a time; per-job delays still overlap
        self._engine_slot = asyncio.Semaphore(1)

    @property
    def queue(self) -> asyncio.Queue:
        if self._queue is None:
            self._queue = asyncio.Queue()
        return self._queue

    def submit(self, key: str, recording_id: str) -> TranscriptionJob:
        job = TranscriptionJob(
            id=f"job-{recording_id}",
            recordingId=recording_id,
            key=key,
            createdAt=datetime.now(timezone.utc),
        )
        self.jobs[job.id] = job
        self.queue.put_nowait(job)
        TRANSCRIPTION_QUEUE_DEPTH.inc()
        LOGGER.info("Starting transcription job %s for recording %s", job.id, recording_id)
        return job

    def pending(self) -> int:
        return self.queue.qsize()

    async def run(self) -> None:
        """Start each queued job on its own task until cancelled."""
        try:
            while True:
                job = await self.queue.get()
                task = asyncio.create_task(self._run_job(job))
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)
        finally:
            for task in list(self._tasks):
                task.cancel()

    async def drain(self) -> None:
        jobs = []
        while not self.queue.empty():
            jobs.append(self.queue.get_nowait())
        await asyncio.gather(*(self._run_job(job) for job in jobs))

    async def _run_job(self, job: TranscriptionJob) -> None:
        try:
            await self.process(job)
        finally:
            self.queue.task_done()

    async def process(self, job: TranscriptionJob) -> TranscriptionJob:
        job.status = "processing"
        TRANSCRIPTION_QUEUE_DEPTH.dec()
        LOGGER.info("Processing transcription for recording %s", job.recordingId)
        try:
            if self.delay_sec:
                await asyncio.sleep(self.delay_sec)
            async with self._engine_slot:
                result = await asyncio.to_thread(self._transcribe, job.key)
            self.store.put(
                json.dumps(result.model_dump()).encode("utf-8"),
                transcript_key(job.recordingId),
                "application/json",
            )
        except Exception as exc:
            job.status = "failed"
            TRANSCRIPTION_COUNTER.labels(status="error").inc()
            LOGGER.error("Transcription failed for recording %s: %s", job.recordingId, exc)
            self._record_error(job, exc)
        else:
            job.status = "completed"
            TRANSCRIPTION_COUNTER.labels(status="success").inc()
            LOGGER.info("Transcription completed for recording %s", job.recordingId)
        job.completedAt = datetime.now(timezone.utc)
        self._forget_finished()
        return job

    def _forget_finished(self) -> None:
        finished = [job_id for job_id, job in self.jobs.items() if job.status in ("completed", "failed")]
        for job_id in finished[: max(0, len(finished) - self.history)]:
            del self.jobs[job_id]

    def _transcribe(self, key: str) -> TranscriptionResult:
        audio = self.store.get(key)
        with tempfile.TemporaryDirectory(prefix="convrec-") as tmp:
            path = Path(tmp) / Path(key).name
            path.write_bytes(audio)
            raw = self.engine.transcribe_path(path)
        return TranscriptionResult.model_validate(raw)

    def _record_error(self, job: TranscriptionJob, exc: Exception) -> None:
        payload = {
            "error": str(exc) or exc.__class__.__name__,
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "jobId": job.id,
        }
        try:
            self.store.put(json.dumps(payload).encode("utf-8"), error_key(job.recordingId), "application/json")
        except Exception as store_exc:
            LOGGER.error("Could not record transcription error for %s: %s", job.recordingId, store_exc)
