"""Bounded activity log mirrored into stdlib logging."""

from __future__ import annotations

import logging
from collections import deque
from datetime import datetime
from typing import List

LOGGER = logging.getLogger("convrec")


class LogBuffer:
    """Keeps the latest activity lines for a status display."""

    def __init__(self, maxlen: int = 200, *, logger: logging.Logger | None = None) -> None:
        self._lines: deque[str] = deque(maxlen=max(1, int(maxlen)))
        self._logger = logger or LOGGER

    def add(self, message: str, *, level: int = logging.INFO) -> None:
        stamp = datetime.now().strftime("%H:%M:%S")
        self._lines.append(f"[{stamp}] {message}")
        self._logger.log(level, message)

    def warning(self, message: str) -> None:
        self.add(message, level=logging.WARNING)

    def error(self, message: str) -> None:
        self.add(message, level=logging.ERROR)

    def get(self) -> List[str]:
        return list(self._lines)

    def clear(self) -> None:
        self._lines.clear()

    def __len__(self) -> int:
        return len(self._lines)


__all__ = ["LogBuffer"]
