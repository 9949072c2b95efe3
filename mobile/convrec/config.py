"""Static client defaults resolved from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass, field


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True, slots=True)
class ClientConfig:
    segment_length_ms: int = field(default_factory=lambda: _env_int("CONVREC_SEGMENT_MS", 30_000))
    poll_interval_ms: int = field(default_factory=lambda: _env_int("CONVREC_POLL_MS", 100))
    sample_rate: int = field(default_factory=lambda: _env_int("CONVREC_SAMPLE_RATE", 16_000))
    channels: int = 1
    model_threshold: float = field(default_factory=lambda: _env_float("CONVREC_MODEL_THRESHOLD", 0.7))
    energy_threshold: float = field(default_factory=lambda: _env_float("CONVREC_ENERGY_THRESHOLD", 1000.0))
    upload_timeout: float = field(default_factory=lambda: _env_float("CONVREC_UPLOAD_TIMEOUT", 30.0))
    max_upload_attempts: int = 2
    settings_file: str = "settings.json"
    segments_file: str = "segments.json"
    segments_dir: str = "segments"
    log_history: int = 200


CONFIG = ClientConfig()

__all__ = ["CONFIG", "ClientConfig"]
