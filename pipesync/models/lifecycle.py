"""Per-item lifecycle inferred from observed field values.

The engine never moves an item through this lifecycle on its own; stages
are derived from what humans (and handlers) wrote to the external
document. The transition table is used to flag unexpected jumps in logs.
"""

from __future__ import annotations

from enum import Enum

from pipesync.models.tracked_item import TrackedItem, value_key


class LifecycleStage(Enum):
    NEW = "New"
    PROCESSING = "Processing"
    PENDING_APPROVAL = "PendingApproval"
    NEEDS_CHANGES = "NeedsChanges"
    APPROVED = "Approved"
    VOICE_NOT_STARTED = "VoiceNotStarted"
    VOICE_IN_PROGRESS = "VoiceInProgress"
    VOICE_COMPLETED = "VoiceCompleted"
    EDITING_NOT_STARTED = "EditingNotStarted"
    EDITING_IN_PROGRESS = "EditingInProgress"
    EDITING_COMPLETED = "EditingCompleted"
    COMPLETED = "Completed"
    ERROR = "Error"


_SUB_STAGE_STAGES = {
    "editing": {
        "completed": LifecycleStage.EDITING_COMPLETED,
        "inprogress": LifecycleStage.EDITING_IN_PROGRESS,
        "notstarted": LifecycleStage.EDITING_NOT_STARTED,
    },
    "voice": {
        "completed": LifecycleStage.VOICE_COMPLETED,
        "inprogress": LifecycleStage.VOICE_IN_PROGRESS,
        "notstarted": LifecycleStage.VOICE_NOT_STARTED,
    },
}

_APPROVAL_STAGES = {
    "approved": LifecycleStage.APPROVED,
    "needschanges": LifecycleStage.NEEDS_CHANGES,
    "pending": LifecycleStage.PENDING_APPROVAL,
}

TRANSITIONS: dict[LifecycleStage, set[LifecycleStage]] = {
    LifecycleStage.NEW: {LifecycleStage.PROCESSING},
    LifecycleStage.PROCESSING: {LifecycleStage.PENDING_APPROVAL},
    LifecycleStage.PENDING_APPROVAL: {LifecycleStage.NEEDS_CHANGES, LifecycleStage.APPROVED},
    LifecycleStage.NEEDS_CHANGES: {LifecycleStage.PENDING_APPROVAL, LifecycleStage.PROCESSING},
    LifecycleStage.APPROVED: {LifecycleStage.VOICE_NOT_STARTED},
    LifecycleStage.VOICE_NOT_STARTED: {LifecycleStage.VOICE_IN_PROGRESS},
    LifecycleStage.VOICE_IN_PROGRESS: {LifecycleStage.VOICE_COMPLETED},
    LifecycleStage.VOICE_COMPLETED: {LifecycleStage.EDITING_NOT_STARTED},
    LifecycleStage.EDITING_NOT_STARTED: {LifecycleStage.EDITING_IN_PROGRESS},
    LifecycleStage.EDITING_IN_PROGRESS: {LifecycleStage.EDITING_COMPLETED},
    LifecycleStage.EDITING_COMPLETED: {LifecycleStage.COMPLETED},
    LifecycleStage.COMPLETED: set(),
    LifecycleStage.ERROR: set(),
}


def infer_stage(item: TrackedItem) -> LifecycleStage:
    """Derive the furthest stage the item's fields show."""
    status = value_key(item.status)
    if status == "error":
        return LifecycleStage.ERROR
    if status == "completed":
        return LifecycleStage.COMPLETED

    for attr in ("editing", "voice"):
        stage = _SUB_STAGE_STAGES[attr].get(value_key(getattr(item, attr)))
        if stage:
            return stage

    stage = _APPROVAL_STAGES.get(value_key(item.approval))
    if stage:
        return stage

    if status:
        return LifecycleStage.PROCESSING
    return LifecycleStage.NEW


def is_expected_transition(old: LifecycleStage, new: LifecycleStage) -> bool:
    """True when ``old -> new`` is part of the normal lifecycle.

    ``Error`` can be entered from and left to any stage.
    """
    if old == new or LifecycleStage.ERROR in (old, new):
        return True
    return new in TRANSITIONS[old]
