"""Workflow actions: the continuation steps a change can trigger.

Actions form a closed set (``ActionKind``) so handler dispatch can be
checked for exhaustiveness. The only open-ended variant is ``UNHANDLED``,
which carries the unrecognized name so it can be logged.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ActionKind(Enum):
    """Every continuation step the engine knows how to route."""

    CONTINUE_PIPELINE_FROM_APPROVAL = "ContinuePipelineFromApproval"
    REQUEST_REGENERATION = "RequestRegeneration"
    MARK_VOICE_COMPLETE = "MarkVoiceComplete"
    CHECK_NEXT_STAGE_ELIGIBILITY = "CheckNextStageEligibility"
    MARK_EDITING_COMPLETE = "MarkEditingComplete"
    NOTIFY_FINAL_COMPLETION = "NotifyFinalCompletion"
    SYNC_DERIVED_FIELDS = "SyncDerivedFields"
    BROADCAST_STATUS_SYNC = "BroadcastStatusSync"
    SYNC_TIMESTAMPS_ONLY = "SyncTimestampsOnly"
    UNHANDLED = "Unhandled"

    @classmethod
    def routable(cls) -> list[ActionKind]:
        """Kinds that require a handler."""
        return [k for k in cls if k is not cls.UNHANDLED]


@dataclass(frozen=True)
class WorkflowAction:
    """A single action. ``name`` is only set for ``UNHANDLED``."""

    kind: ActionKind
    name: str = ""

    @property
    def label(self) -> str:
        if self.kind is ActionKind.UNHANDLED:
            return f"Unhandled({self.name})"
        return self.kind.value

    @property
    def is_unhandled(self) -> bool:
        return self.kind is ActionKind.UNHANDLED

    @classmethod
    def parse(cls, name: str) -> WorkflowAction:
        """Map an action name to its variant, falling back to Unhandled."""
        for kind in ActionKind.routable():
            if kind.value == name:
                return cls(kind)
        return unhandled(name)

    def __str__(self) -> str:
        return self.label


def unhandled(name: str) -> WorkflowAction:
    return WorkflowAction(ActionKind.UNHANDLED, name=name)


CONTINUE_PIPELINE_FROM_APPROVAL = WorkflowAction(ActionKind.CONTINUE_PIPELINE_FROM_APPROVAL)
REQUEST_REGENERATION = WorkflowAction(ActionKind.REQUEST_REGENERATION)
MARK_VOICE_COMPLETE = WorkflowAction(ActionKind.MARK_VOICE_COMPLETE)
CHECK_NEXT_STAGE_ELIGIBILITY = WorkflowAction(ActionKind.CHECK_NEXT_STAGE_ELIGIBILITY)
MARK_EDITING_COMPLETE = WorkflowAction(ActionKind.MARK_EDITING_COMPLETE)
NOTIFY_FINAL_COMPLETION = WorkflowAction(ActionKind.NOTIFY_FINAL_COMPLETION)
SYNC_DERIVED_FIELDS = WorkflowAction(ActionKind.SYNC_DERIVED_FIELDS)
BROADCAST_STATUS_SYNC = WorkflowAction(ActionKind.BROADCAST_STATUS_SYNC)
SYNC_TIMESTAMPS_ONLY = WorkflowAction(ActionKind.SYNC_TIMESTAMPS_ONLY)
