"""Best-effort plain-text notification sinks with no delivery guarantee."""

from __future__ import annotations

import logging
import threading
from typing import Protocol

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    def send(self, message: str) -> None:
        ...


class LogNotifier:
    """Writes notifications to the log. Used when no chat is configured."""

    def __init__(self, level: int = logging.INFO):
        self.level = level

    def send(self, message: str) -> None:
        logger.log(self.level, "Notification: %s", message.replace("\n", " | "))


class MemoryNotifier:
    """Collects notifications in a list."""

    def __init__(self) -> None:
        self.messages: list[str] = []
        self._lock = threading.Lock()

    def send(self, message: str) -> None:
        with self._lock:
            self.messages.append(message)
