"""Core data models for the reconciliation engine.

Covers: monitored fields, tracked items, snapshots, field-level deltas,
priority tiers and change events. Items are typed with a fixed set of
optional monitored fields so field enumeration is exhaustive.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from enum import Enum, IntEnum
from typing import Any, Iterator

from pipesync.models.actions import WorkflowAction


class FieldKind(Enum):
    """Role a monitored field plays in the pipeline."""

    LIFECYCLE = "lifecycle"  # Primary automation status
    APPROVAL = "approval"  # Human script approval
    SUB_STAGE = "sub_stage"  # Voice generation, video editing


class MonitoredField(Enum):
    """The fixed, exhaustive set of fields the differ compares.

    Declaration order is the order deltas and composed actions follow.
    """

    APPROVAL = "approval"
    STATUS = "status"
    VOICE = "voice"
    EDITING = "editing"

    @property
    def kind(self) -> FieldKind:
        return _FIELD_KINDS[self]

    @property
    def attr(self) -> str:
        return self.value


_FIELD_KINDS = {
    MonitoredField.APPROVAL: FieldKind.APPROVAL,
    MonitoredField.STATUS: FieldKind.LIFECYCLE,
    MonitoredField.VOICE: FieldKind.SUB_STAGE,
    MonitoredField.EDITING: FieldKind.SUB_STAGE,
}

# Keys the backing document uses for identity; everything else that is not a
# monitored field is carried through in TrackedItem.extra.
_ID_KEY = "id"
_TITLE_KEY = "title"


def normalize_value(value: Any) -> str | None:
    """Collapse absent and empty values into a single ``None``."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def value_key(value: str | None) -> str:
    """Comparison key for status values, so "Needs Changes" matches "NeedsChanges"."""
    if not value:
        return ""
    return re.sub(r"[\s_\-]", "", value).lower()


@dataclass(frozen=True)
class TrackedItem:
    """A unit of pipeline work as observed in the external document."""

    item_id: str
    title: str = ""
    status: str | None = None
    approval: str | None = None
    voice: str | None = None
    editing: str | None = None
    extra: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def __post_init__(self) -> None:
        for f in MonitoredField:
            object.__setattr__(self, f.attr, normalize_value(getattr(self, f.attr)))

    def get(self, monitored: MonitoredField) -> str | None:
        return getattr(self, monitored.attr)

    def monitored_values(self) -> dict[MonitoredField, str | None]:
        return {f: self.get(f) for f in MonitoredField}

    def with_updates(self, updates: dict[MonitoredField, str | None]) -> TrackedItem:
        """Return a copy with the given monitored fields replaced."""
        return replace(self, **{f.attr: v for f, v in updates.items()})

    @property
    def display_title(self) -> str:
        return self.title.strip() or "Title Unavailable"

    # -- serialization -------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = dict(self.extra)
        data[_ID_KEY] = self.item_id
        data[_TITLE_KEY] = self.title
        for f in MonitoredField:
            data[f.value] = self.get(f) or ""
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TrackedItem:
        if not data.get(_ID_KEY):
            raise ValueError("Tracked item is missing an 'id'")
        known = {_ID_KEY, _TITLE_KEY} | {f.value for f in MonitoredField}
        return cls(
            item_id=str(data[_ID_KEY]),
            title=str(data.get(_TITLE_KEY) or ""),
            extra={k: v for k, v in data.items() if k not in known},
            **{f.attr: data.get(f.value) for f in MonitoredField},
        )


@dataclass
class Snapshot:
    """Every tracked item's monitored values at one point in time."""

    items: list[TrackedItem] = field(default_factory=list)
    last_update: str | None = None

    @property
    def is_empty(self) -> bool:
        return len(self.items) == 0

    def by_id(self) -> dict[str, TrackedItem]:
        return {item.item_id: item for item in self.items}

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": [item.to_dict() for item in self.items],
            "lastUpdateTimestamp": self.last_update,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Snapshot:
        return cls(
            items=[TrackedItem.from_dict(d) for d in data.get("items") or []],
            last_update=data.get("lastUpdateTimestamp"),
        )


@dataclass(frozen=True)
class FieldChange:
    """Old and new value of one monitored field."""

    old: str | None
    new: str | None


class Delta:
    """Field-level differences for one item, ordered by MonitoredField."""

    def __init__(self, changes: dict[MonitoredField, FieldChange] | None = None):
        changes = changes or {}
        self._changes = {f: changes[f] for f in MonitoredField if f in changes}

    def __contains__(self, monitored: object) -> bool:
        return monitored in self._changes

    def __getitem__(self, monitored: MonitoredField) -> FieldChange:
        return self._changes[monitored]

    def __iter__(self) -> Iterator[MonitoredField]:
        return iter(self._changes)

    def __len__(self) -> int:
        return len(self._changes)

    def __bool__(self) -> bool:
        return bool(self._changes)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Delta):
            return NotImplemented
        return self._changes == other._changes

    def __repr__(self) -> str:
        return f"Delta({self.describe()})"

    def items(self):
        return self._changes.items()

    @property
    def fields(self) -> list[MonitoredField]:
        return list(self._changes)

    def changed_kinds(self) -> set[FieldKind]:
        return {f.kind for f in self._changes}

    def describe(self) -> str:
        parts = [
            f"{f.value}: {c.old or '(empty)'} -> {c.new or '(empty)'}"
            for f, c in self._changes.items()
        ]
        return ", ".join(parts)


class PriorityTier(IntEnum):
    """Urgency tier; lower value is processed first."""

    CRITICAL = 0
    HIGH = 1
    MEDIUM = 2
    NORMAL = 3


@dataclass(frozen=True)
class ChangeCandidate:
    """A detected delta for one item, before classification."""

    item: TrackedItem
    delta: Delta

    @property
    def item_id(self) -> str:
        return self.item.item_id


@dataclass
class ChangeEvent:
    """A classified, resolved change ready for execution."""

    item_id: str
    delta: Delta
    tier: PriorityTier
    actions: list[WorkflowAction]
    item: TrackedItem | None = None
    derived_updates: dict[MonitoredField, str] = field(default_factory=dict)

    @property
    def title(self) -> str:
        return self.item.display_title if self.item else self.item_id

    def summary(self) -> str:
        actions = ", ".join(a.label for a in self.actions)
        return f"[{self.tier.name}] {self.item_id}: {self.delta.describe()} => {actions}"
