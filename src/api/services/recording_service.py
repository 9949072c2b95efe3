"""Accept audio uploads, store them and hand them to transcription."""

from __future__ import annotations

import base64
import binascii
import json
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from ..errors import ApiError
from ..metrics import UPLOAD_BYTES, UPLOAD_COUNTER
from ..schemas import AudioUploadRequest
from ..settings import APISettings
from .storage import ObjectStore, StorageError
from .transcription import TranscriptionQueue, transcript_key

LOGGER = logging.getLogger("convrec.api.recordings")


def metadata_key(recording_id: str) -> str:
    return f"metadata/{recording_id}.json"


class RecordingService:
    """Store audio uploads and queue them for transcription."""

    def __init__(self, settings: APISettings, store: ObjectStore, transcriber: TranscriptionQueue) -> None:
        self.settings = settings
        self.store = store
        self.transcriber = transcriber

    async def save_upload(self, payload: AudioUploadRequest) -> Dict[str, Any]:
        file_name = Path(payload.fileName.strip()).name
        if not file_name or not payload.audioData:
            UPLOAD_COUNTER.labels(status="rejected").inc()
            raise ApiError("Missing required audio data", 400)
        if file_name in (".", ".."):
            UPLOAD_COUNTER.labels(status="rejected").inc()
            raise ApiError("Invalid file name", 400)
        audio = self._decode(payload.audioData)
        recording_id = str(uuid.uuid4())
        platform = payload.metadata.deviceInfo.platform or "unknown device"
        LOGGER.info("Received audio upload: %s from %s", file_name, platform)

        key = f"recordings/{recording_id}/{file_name}"
        content_type = self._mime_type(file_name)
        try:
            self.store.put(audio, key, content_type)
        except StorageError as exc:
            UPLOAD_COUNTER.labels(status="error").inc()
            raise ApiError("Failed to upload file to storage", 500) from exc
        UPLOAD_BYTES.observe(len(audio))

        job = self.transcriber.submit(key, recording_id)
        self._store_metadata(recording_id, file_name, content_type, len(audio), payload, job.id)
        UPLOAD_COUNTER.labels(status="success").inc()
        return {
            "success": True,
            "recordingId": recording_id,
            "message": "Audio uploaded successfully",
            "transcriptionJobId": job.id,
        }

    def get_transcript(self, recording_id: str) -> Optional[Dict[str, Any]]:
        key = transcript_key(recording_id)
        if not self.store.exists(key):
            return None
        try:
            return json.loads(self.store.get(key).decode("utf-8"))
        except (StorageError, ValueError) as exc:
            LOGGER.warning("Transcript for %s unreadable: %s", recording_id, exc)
            return None

    def _decode(self, data: str) -> bytes:
        if "," in data[:64] and data.startswith("data:"):
            data = data.split(",", 1)[1]
        try:
            audio = base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError) as exc:
            UPLOAD_COUNTER.labels(status="rejected").inc()
            raise ApiError("Invalid audio data encoding", 400) from exc
        if not audio:
            UPLOAD_COUNTER.labels(status="rejected").inc()
            raise ApiError("Missing required audio data", 400)
        if len(audio) > self.settings.max_upload_bytes:
            UPLOAD_COUNTER.labels(status="rejected").inc()
            raise ApiError("Audio payload too large", 413)
        return audio

    def _store_metadata(
        self,
        recording_id: str,
        file_name: str,
        content_type: str,
        size: int,
        payload: AudioUploadRequest,
        job_id: str,
    ) -> None:
        document = {
            "recordingId": recording_id,
            "fileName": file_name,
            "contentType": content_type,
            "size": size,
            "timestamp": payload.timestamp,
            "receivedAt": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "metadata": payload.metadata.model_dump(),
            "transcriptionJobId": job_id,
        }
        try:
            self.store.put(
                json.dumps(document).encode("utf-8"),
                metadata_key(recording_id),
                "application/json",
            )
        except StorageError as exc:
            LOGGER.warning("Metadata for %s not stored: %s", recording_id, exc)

    @staticmethod
    def _mime_type(file_name: str) -> str:
        suffix = Path(file_name).suffix.lower()
        if suffix == ".flac":
            return "audio/flac"
        if suffix == ".mp3":
            return "audio/mpeg"
        if suffix in {".m4a", ".aac"}:
            return "audio/aac"
        return "audio/wav"
