"""Error taxonomy for the recording pipeline."""

from __future__ import annotations


class RecorderError(Exception):
    pass


class DeviceError(RecorderError):
    """Capture device could not be acquired (permission denied, busy, missing backend)."""


class NoActiveRecordingError(RecorderError):
    """Stop was requested while nothing is recording."""


class GateError(RecorderError):
    """Conversation detection failed; never escapes ConversationGate."""


class StorageError(RecorderError):
    """Upload to the storage boundary failed."""


class FileSystemError(RecorderError):
    """Local segment file could not be read or deleted."""


__all__ = [
    "DeviceError",
    "FileSystemError",
    "GateError",
    "NoActiveRecordingError",
    "RecorderError",
    "StorageError",
]
