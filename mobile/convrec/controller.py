"""Recording controller: owns the session and wires recorder to pipeline."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

from .audio.capture import CaptureDevice, SoundDeviceCapture
from .audio.gate import ConversationGate, load_speech_model
from .audio.recorder import SegmentRecorder
from .audio.types import RecordingSession, Segment, SegmentState
from .config import CONFIG
from .errors import NoActiveRecordingError
from .services.logger import LogBuffer
from .services.network import ApiClient
from .services.uploader import UploadPipeline
from .store.segment_store import SegmentStore
from .store.settings_store import SettingsStore


class RecorderController:
    def __init__(
        self,
        base_dir: Path,
        *,
        device: Optional[CaptureDevice] = None,
        client: Optional[ApiClient] = None,
        gate: Optional[ConversationGate] = None,
        logger: Optional[LogBuffer] = None,
    ) -> None:
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self.logger = logger or LogBuffer(CONFIG.log_history)
        self.settings_store = SettingsStore(self.base_dir / CONFIG.settings_file)
        settings = self.settings_store.get()
        self.store = SegmentStore(self.base_dir / CONFIG.segments_file)
        self.client = client or ApiClient(self.settings_store)
        self.gate = gate or ConversationGate(
            self.logger,
            model_loader=load_speech_model,
            threshold=settings.model_threshold,
            energy_threshold=settings.energy_threshold,
            enabled=settings.gating_enabled,
        )
        self.pipeline = UploadPipeline(self.gate, self.client, self.store, self.logger)
        self.recorder = SegmentRecorder(
            device or SoundDeviceCapture(CONFIG.sample_rate, CONFIG.channels),
            self.base_dir / CONFIG.segments_dir,
            self.pipeline.submit,
            self.logger,
            segment_length_ms=settings.segment_length_ms,
        )
        self.session: Optional[RecordingSession] = None

    @property
    def is_recording(self) -> bool:
        return self.session is not None and self.session.is_active

    async def launch(self) -> None:
        """Recover interrupted work, run deferred retries, start model loading."""
        self.gate.start_loading()
        self.pipeline.recover()
        await self.pipeline.retry_failed()

    async def start_recording(self) -> RecordingSession:
        if self.is_recording:
            return self.session  # type: ignore[return-value]
        session = RecordingSession()
        await self.recorder.start(session)
        self.session = session
        return session

    async def stop_recording(self) -> Optional[Segment]:
        if self.session is None:
            raise NoActiveRecordingError("No recording in progress")
        return await self.recorder.stop(self.session)

    async def drain(self) -> None:
        await self.pipeline.drain()

    async def shutdown(self) -> None:
        if self.is_recording:
            await self.stop_recording()
        await self.drain()
        await self.client.close()

    def update_settings(self, **kwargs) -> None:
        settings = self.settings_store.update(**kwargs)
        self.recorder.set_segment_length(settings.segment_length_ms)
        self.gate.enabled = settings.gating_enabled
        self.gate.set_thresholds(threshold=settings.model_threshold, energy_threshold=settings.energy_threshold)
        self.logger.add("Settings saved")

    async def fetch_transcript(self, recording_id: str) -> Optional[Dict[str, Any]]:
        return await self.client.fetch_transcript(recording_id)

    def status(self) -> Dict[str, Any]:
        counts = {state.value: 0 for state in SegmentState}
        if self.session:
            for segment in self.session.segments:
                counts[segment.state.value] += 1
        return {
            "recording": self.is_recording,
            "session_id": self.session.id if self.session else None,
            "elapsed_ms": self.session.total_elapsed_ms if self.session else 0,
            "segments": counts,
            "in_flight": self.pipeline.in_flight,
            "retry_pending": len(self.store.pending_retries()),
            "model_ready": self.gate.model_ready,
            "log": self.logger.get()[-10:],
        }


__all__ = ["RecorderController"]
