"""Notification sinks for pass results and failures."""

from pipesync.notify.base import LogNotifier, MemoryNotifier, NotificationSink
from pipesync.notify.telegram import TelegramNotifier

__all__ = ["LogNotifier", "MemoryNotifier", "NotificationSink", "TelegramNotifier"]
