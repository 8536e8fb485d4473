"""State source interface for the external, human-edited document."""

from __future__ import annotations

from typing import Mapping, Optional, Protocol, Union

from pipesync.models.tracked_item import MonitoredField, TrackedItem

FieldUpdates = Mapping[Union[MonitoredField, str], Optional[str]]


class StateSource(Protocol):
    """Authoritative pipeline state. Read in full on every pass."""

    def list_tracked_items(self) -> list[TrackedItem]:
        ...

    def apply_field_updates(self, item_id: str, updates: FieldUpdates) -> None:
        ...


def split_updates(updates: FieldUpdates) -> tuple[dict[MonitoredField, Optional[str]], dict[str, Optional[str]]]:
    """Separate monitored-field updates from pass-through extra keys.

    String keys naming a monitored field are treated as that field.
    """
    monitored: dict[MonitoredField, Optional[str]] = {}
    extra: dict[str, Optional[str]] = {}
    for key, value in updates.items():
        if isinstance(key, MonitoredField):
            monitored[key] = value
            continue
        try:
            monitored[MonitoredField(key)] = value
        except ValueError:
            extra[key] = value
    return monitored, extra
