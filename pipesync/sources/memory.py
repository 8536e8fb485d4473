"""In-memory state source, for tests and dry runs."""

from __future__ import annotations

import threading
from dataclasses import replace
from typing import Iterable, Optional

from pipesync.models.tracked_item import MonitoredField, TrackedItem
from pipesync.sources.base import FieldUpdates, split_updates
from pipesync.sync.errors import PermanentExternalError


class InMemoryStateSource:
    """Keeps tracked items in insertion order and records every write."""

    def __init__(self, items: Iterable[TrackedItem] = ()):
        self._items: dict[str, TrackedItem] = {item.item_id: item for item in items}
        self._lock = threading.Lock()
        self.writes: list[tuple[str, dict]] = []

    def list_tracked_items(self) -> list[TrackedItem]:
        with self._lock:
            return list(self._items.values())

    def apply_field_updates(self, item_id: str, updates: FieldUpdates) -> None:
        with self._lock:
            item = self._items.get(item_id)
            if item is None:
                raise PermanentExternalError(f"Item {item_id} not found")
            monitored, extra = split_updates(updates)
            updated = item.with_updates(monitored)
            if extra:
                merged = dict(item.extra)
                merged.update(extra)
                updated = replace(updated, extra=merged)
            self._items[item_id] = updated
            self.writes.append((item_id, dict(updates)))

    # -- helpers for simulating human edits -----------------------------

    def put(self, item: TrackedItem) -> None:
        with self._lock:
            self._items[item.item_id] = item

    def set_field(self, item_id: str, monitored: MonitoredField, value: Optional[str]) -> None:
        with self._lock:
            self._items[item_id] = self._items[item_id].with_updates({monitored: value})

    def get(self, item_id: str) -> TrackedItem:
        with self._lock:
            return self._items[item_id]

    def remove(self, item_id: str) -> None:
        with self._lock:
            self._items.pop(item_id, None)
