"""Object storage boundary with a filesystem-backed bucket."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Protocol

from ..settings import APISettings

LOGGER = logging.getLogger("convrec.api.storage")


class StorageError(Exception):
    pass


class ObjectStore(Protocol):
    def put(self, data: bytes, key: str, content_type: str) -> None: ...

    def get(self, key: str) -> bytes: ...

    def exists(self, key: str) -> bool: ...


class FileObjectStore:
    """Stores objects as files under ``<root>/<bucket>/<key>``."""

    def __init__(self, root: str | Path, bucket: str) -> None:
        self.bucket_dir = Path(root) / bucket
        self.bucket_dir.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_settings(cls, settings: APISettings) -> "FileObjectStore":
        return cls(settings.storage_dir, settings.bucket_name)

    def _path(self, key: str) -> Path:
        if any(part in ("", ".", "..") for part in key.split("/")):
            raise StorageError(f"Invalid object key: {key}")
        target = (self.bucket_dir / key).resolve()
        if self.bucket_dir.resolve() not in target.parents:
            raise StorageError(f"Invalid object key: {key}")
        return target

    def put(self, data: bytes, key: str, content_type: str) -> None:
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
            path.with_name(path.name + ".meta").write_text(
                json.dumps({"ContentType": content_type, "ContentLength": len(data)}),
                encoding="utf-8",
            )
        except OSError as exc:
            LOGGER.error("Failed to upload object %s: %s", key, exc)
            raise StorageError(f"Failed to upload {key}") from exc
        LOGGER.info("Stored object %s (%d bytes)", key, len(data))

    def get(self, key: str) -> bytes:
        path = self._path(key)
        try:
            return path.read_bytes()
        except OSError as exc:
            raise StorageError(f"Object not found: {key}") from exc

    def exists(self, key: str) -> bool:
        try:
            return self._path(key).is_file()
        except StorageError:
            return False

    def content_type(self, key: str) -> str | None:
        meta = self._path(key).with_name(self._path(key).name + ".meta")
        if not meta.exists():
            return None
        return json.loads(meta.read_text(encoding="utf-8")).get("ContentType")
