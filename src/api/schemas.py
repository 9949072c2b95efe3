"""Pydantic schemas for API contracts."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal

from pydantic import BaseModel, ConfigDict, Field


class DeviceInfo(BaseModel):
    model_config = ConfigDict(extra="allow")

    platform: str = "unknown"


class UploadMetadata(BaseModel):
    model_config = ConfigDict(extra="allow")

    deviceInfo: DeviceInfo = Field(default_factory=DeviceInfo)


class AudioUploadRequest(BaseModel):
    fileName: str
    audioData: str
    timestamp: str | None = None
    metadata: UploadMetadata = Field(default_factory=UploadMetadata)


class UploadResponse(BaseModel):
    success: bool
    recordingId: str
    message: str
    transcriptionJobId: str | None = None


class TranscriptionJob(BaseModel):
    id: str
    recordingId: str
    key: str
    status: Literal["pending", "processing", "completed", "failed"] = "pending"
    createdAt: datetime
    completedAt: datetime | None = None


class TranscriptSegment(BaseModel):
    start: float
    end: float
    text: str


class TranscriptionResult(BaseModel):
    text: str
    confidence: float | None = None
    segments: List[TranscriptSegment] = Field(default_factory=list)


class TranscriptResponse(BaseModel):
    recordingId: str
    transcript: Dict[str, Any]


class HealthResponse(BaseModel):
    status: str = "UP"
    timestamp: datetime


class ErrorBody(BaseModel):
    message: str
    status: int
    timestamp: str
    path: str | None = None


class ErrorResponse(BaseModel):
    error: ErrorBody
