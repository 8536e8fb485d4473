"""Data models: tracked items, snapshots, deltas, actions and lifecycle stages."""

from pipesync.models.actions import ActionKind, WorkflowAction
from pipesync.models.lifecycle import LifecycleStage, infer_stage
from pipesync.models.tracked_item import (
    ChangeCandidate,
    ChangeEvent,
    Delta,
    FieldChange,
    FieldKind,
    MonitoredField,
    PriorityTier,
    Snapshot,
    TrackedItem,
)

__all__ = [
    "ActionKind",
    "WorkflowAction",
    "LifecycleStage",
    "infer_stage",
    "ChangeCandidate",
    "ChangeEvent",
    "Delta",
    "FieldChange",
    "FieldKind",
    "MonitoredField",
    "PriorityTier",
    "Snapshot",
    "TrackedItem",
]
