"""API settings resolved from the environment."""

from __future__ import annotations

import os
from functools import lru_cache

from pydantic import BaseModel, Field


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes"}


class APISettings(BaseModel):
    app_name: str = Field(default="Conversation Processor API")
    version: str = Field(default="1.0.0")
    host: str = Field(default=os.getenv("HOST", "0.0.0.0"))
    port: int = Field(default=int(os.getenv("PORT", "3000")))
    log_level: str = Field(default=os.getenv("LOG_LEVEL", "INFO"))
    storage_dir: str = Field(default=os.getenv("STORAGE_DIR", "data/storage"))
    bucket_name: str = Field(default=os.getenv("S3_BUCKET_NAME", "conversation-recordings"))
    max_upload_bytes: int = Field(default=int(os.getenv("MAX_UPLOAD_BYTES", str(50 * 1024 * 1024))))
    transcription_delay_sec: float = Field(
        default=float(os.getenv("TRANSCRIPTION_DELAY_SEC", "2.0"))
    )
    transcription_job_history: int = Field(default=int(os.getenv("TRANSCRIPTION_JOB_HISTORY", "1000")))
    whisper_model: str = Field(default=os.getenv("WHISPER_MODEL", "tiny"))
    whisper_device: str = Field(default=os.getenv("WHISPER_DEVICE", "cpu"))
    whisper_compute_type: str = Field(
        default=os.getenv("WHISPER_COMPUTE_TYPE", "int8")
    )
    whisper_mock_transcriber: bool = Field(default=_flag("WHISPER_USE_MOCK", "true"))


@lru_cache()
def get_settings() -> APISettings:
    return APISettings()
