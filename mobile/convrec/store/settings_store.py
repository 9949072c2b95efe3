"""Persistent user settings for the recorder client."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from pathlib import Path

from ..config import CONFIG


@dataclass(slots=True)
class AppSettings:
    server_url: str = ""
    platform: str = "Mobile"
    segment_length_ms: int = CONFIG.segment_length_ms
    gating_enabled: bool = True
    model_threshold: float = CONFIG.model_threshold
    energy_threshold: float = CONFIG.energy_threshold


class SettingsStore:
    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._settings = self._load()

    def _load(self) -> AppSettings:
        settings = AppSettings()
        if not self.path.exists():
            return settings
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except Exception:
            raw = {}
        if not isinstance(raw, dict):
            raw = {}
        settings.server_url = str(raw.get("server_url", settings.server_url))
        settings.platform = str(raw.get("platform", settings.platform)) or settings.platform
        settings.segment_length_ms = max(1, int(raw.get("segment_length_ms", settings.segment_length_ms)))
        settings.gating_enabled = _as_bool(raw.get("gating_enabled", settings.gating_enabled))
        settings.model_threshold = float(raw.get("model_threshold", settings.model_threshold))
        settings.energy_threshold = float(raw.get("energy_threshold", settings.energy_threshold))
        return settings

    def get(self) -> AppSettings:
        return self._settings

    def update(self, **kwargs) -> AppSettings:
        for key, value in kwargs.items():
            if not hasattr(self._settings, key):
                continue
            current = getattr(self._settings, key)
            if isinstance(current, bool):
                setattr(self._settings, key, _as_bool(value))
            elif isinstance(current, float):
                setattr(self._settings, key, float(value))
            elif isinstance(current, int):
                setattr(self._settings, key, int(value))
            else:
                setattr(self._settings, key, value or "")
        self._persist()
        return self._settings

    def _persist(self) -> None:
        self.path.write_text(json.dumps(asdict(self._settings)), encoding="utf-8")


def _as_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


__all__ = ["AppSettings", "SettingsStore"]
