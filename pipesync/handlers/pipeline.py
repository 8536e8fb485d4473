"""Default handlers for the content pipeline's workflow actions.

Each handler is idempotent: re-running it after a crash before the
snapshot commit writes the same values again. Work that belongs to
external providers (script and voice generation) is delegated to an
optional callback.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from pipesync.handlers import fields
from pipesync.models.actions import ActionKind
from pipesync.models.lifecycle import infer_stage
from pipesync.models.tracked_item import MonitoredField, value_key
from pipesync.sync.executor import ActionContext, Handler

logger = logging.getLogger(__name__)

ApprovalCallback = Callable[[str, ActionContext], Optional[bool]]


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def request_regeneration(item_id: str, ctx: ActionContext) -> None:
    """Send the script back through generation."""
    ctx.update_fields({
        MonitoredField.STATUS: fields.STATUS_PROCESSING,
        MonitoredField.APPROVAL: fields.APPROVAL_PENDING,
        fields.REGENERATING_KEY: "true",
    })
    ctx.notify(f"Script regeneration started\n{item_id} - {ctx.title}")


def mark_voice_complete(item_id: str, ctx: ActionContext) -> None:
    logger.info("%s: voice generation completed", item_id)
    ctx.notify(f"Voice generation completed\n{item_id} - {ctx.title}")


def check_next_stage_eligibility(item_id: str, ctx: ActionContext) -> None:
    """Open the editing stage once voice is done, unless editing already started."""
    item = ctx.current_item
    if item is None or value_key(item.voice) != value_key(fields.STAGE_COMPLETED):
        logger.info("%s: not eligible for editing yet", item_id)
        return
    if item.editing is not None:
        logger.info("%s: editing already at '%s'", item_id, item.editing)
        return
    ctx.update_fields({MonitoredField.EDITING: fields.STAGE_NOT_STARTED})


def mark_editing_complete(item_id: str, ctx: ActionContext) -> None:
    logger.info("%s: video editing completed", item_id)


def notify_final_completion(item_id: str, ctx: ActionContext) -> None:
    item = ctx.current_item
    if item is None or value_key(item.status) != value_key(fields.STATUS_COMPLETED):
        ctx.update_fields({MonitoredField.STATUS: fields.STATUS_COMPLETED})
    ctx.notify(f"Video completed\n{item_id} - {ctx.title}")


def sync_derived_fields(item_id: str, ctx: ActionContext) -> None:
    """Record the inferred lifecycle stage next to the monitored fields."""
    updates = {fields.LAST_SYNCED_KEY: _timestamp()}
    item = ctx.current_item
    if item is not None:
        updates[fields.STAGE_KEY] = infer_stage(item).value
    ctx.update_fields(updates)


def broadcast_status_sync(item_id: str, ctx: ActionContext) -> None:
    change = ctx.delta[MonitoredField.STATUS] if MonitoredField.STATUS in ctx.delta else None
    if change is None:
        return
    ctx.notify(f"Status is now {change.new or '(empty)'}\n{item_id} - {ctx.title}")


def sync_timestamps_only(item_id: str, ctx: ActionContext) -> None:
    ctx.update_fields({fields.LAST_SYNCED_KEY: _timestamp()})


def default_handlers(on_approved: Optional[ApprovalCallback] = None) -> dict[ActionKind, Handler]:
    """A complete handler mapping for every routable action.

    Args:
        on_approved: Starts the external post-approval work (voice script,
            thumbnails). Without it, approval is only announced.
    """

    def continue_pipeline_from_approval(item_id: str, ctx: ActionContext) -> Optional[bool]:
        if on_approved is None:
            logger.info("%s: approved, no continuation configured", item_id)
            ctx.notify(f"Script approved\n{item_id} - {ctx.title}")
            return None
        return on_approved(item_id, ctx)

    return {
        ActionKind.CONTINUE_PIPELINE_FROM_APPROVAL: continue_pipeline_from_approval,
        ActionKind.REQUEST_REGENERATION: request_regeneration,
        ActionKind.MARK_VOICE_COMPLETE: mark_voice_complete,
        ActionKind.CHECK_NEXT_STAGE_ELIGIBILITY: check_next_stage_eligibility,
        ActionKind.MARK_EDITING_COMPLETE: mark_editing_complete,
        ActionKind.NOTIFY_FINAL_COMPLETION: notify_final_completion,
        ActionKind.SYNC_DERIVED_FIELDS: sync_derived_fields,
        ActionKind.BROADCAST_STATUS_SYNC: broadcast_status_sync,
        ActionKind.SYNC_TIMESTAMPS_ONLY: sync_timestamps_only,
    }
