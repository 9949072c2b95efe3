"""Audio upload and transcript endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from ..errors import ApiError
from ..schemas import AudioUploadRequest, TranscriptResponse, UploadResponse
from ..services.recording_service import RecordingService
from ..settings import APISettings, get_settings

router = APIRouter(prefix="/api", tags=["audio"])
LOGGER = logging.getLogger("convrec.api.audio")


def get_service(request: Request, settings: APISettings = Depends(get_settings)) -> RecordingService:
    return RecordingService(settings, request.app.state.object_store, request.app.state.transcriber)


@router.post("/audio-upload", response_model=UploadResponse)
async def upload_audio(
    payload: AudioUploadRequest,
    service: RecordingService = Depends(get_service),
):
    result = await service.save_upload(payload)
    return UploadResponse(**result)


@router.get("/transcripts/{recording_id}", response_model=TranscriptResponse)
async def get_transcript(recording_id: str, service: RecordingService = Depends(get_service)):
    if not recording_id.strip():
        raise ApiError("Missing recording ID", 400)
    LOGGER.info("Fetching transcript for recording: %s", recording_id)
    transcript = service.get_transcript(recording_id)
    if transcript is None:
        LOGGER.warning("Transcript not found for recording: %s", recording_id)
        return JSONResponse(
            status_code=404,
            content={"error": "Transcript not found or still processing", "recordingId": recording_id},
        )
    return TranscriptResponse(recordingId=recording_id, transcript=transcript)
