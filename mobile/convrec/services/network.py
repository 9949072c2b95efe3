"""HTTP client for the conversation processor API."""

from __future__ import annotations

import asyncio
import base64
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import httpx

from ..audio.types import Segment
from ..config import CONFIG
from ..errors import FileSystemError, StorageError
from ..store.settings_store import SettingsStore


class ApiClient:
    def __init__(
        self,
        settings: SettingsStore,
        *,
        timeout: float | None = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.settings_store = settings
        self.timeout = timeout or CONFIG.upload_timeout
        self._client = client or httpx.AsyncClient(timeout=self.timeout)

    def _url(self, path: str) -> str:
        base = self.settings_store.get().server_url.rstrip("/")
        if not base:
            raise StorageError("Server URL missing")
        return f"{base}{path}"

    async def test_connection(self) -> bool:
        try:
            resp = await self._client.get(self._url("/health"))
        except httpx.HTTPError as exc:
            raise StorageError(str(exc)) from exc
        return resp.status_code == 200

    def build_payload(self, segment: Segment) -> Dict[str, Any]:
        try:
            audio = Path(segment.file_path).read_bytes()
        except OSError as exc:
            raise FileSystemError(f"Cannot read {segment.file_name}: {exc}") from exc
        return {
            "fileName": segment.file_name,
            "audioData": base64.b64encode(audio).decode("ascii"),
            "timestamp": _isoformat(segment.started_at),
            "metadata": {
                "deviceInfo": {"platform": self.settings_store.get().platform},
                "sessionId": segment.session_id,
                "segmentIndex": segment.index,
                "startOffsetMs": segment.start_offset_ms,
                "durationMs": segment.duration_ms,
            },
        }

    def encode_payload(self, segment: Segment) -> bytes:
        return json.dumps(self.build_payload(segment)).encode("utf-8")

    async def upload_segment(self, segment: Segment) -> Dict[str, Any]:
        url = self._url("/api/audio-upload")
        # file read and base64 of a whole segment stay off the event loop
        body = await asyncio.to_thread(self.encode_payload, segment)
        try:
            resp = await self._client.post(url, content=body, headers={"Content-Type": "application/json"})
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise StorageError(f"Upload failed: {exc.response.status_code} {_error_message(exc.response)}") from exc
        except httpx.HTTPError as exc:
            raise StorageError(f"Upload failed: {exc}") from exc
        try:
            body = resp.json()
        except ValueError as exc:
            raise StorageError(f"Invalid response: {exc}") from exc
        if not isinstance(body, dict) or not body.get("success") or not body.get("recordingId"):
            raise StorageError(f"Upload rejected: {body}")
        return body

    async def fetch_transcript(self, recording_id: str) -> Optional[Dict[str, Any]]:
        """Return the transcript, or None while the backend is still processing."""
        try:
            resp = await self._client.get(self._url(f"/api/transcripts/{recording_id}"))
            if resp.status_code == 404:
                return None
            resp.raise_for_status()
            return resp.json().get("transcript")
        except httpx.HTTPStatusError as exc:
            raise StorageError(f"Transcript error: {exc.response.status_code}") from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise StorageError(str(exc)) from exc

    async def close(self) -> None:
        await self._client.aclose()


def _isoformat(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return str(error.get("message", ""))
    return str(error or "")


__all__ = ["ApiClient"]
