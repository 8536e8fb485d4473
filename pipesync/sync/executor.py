"""Routes resolved actions to injected handlers.

The executor holds no business logic. For each change event, in tier order,
it sends a best-effort notification, writes derived field defaults, then
dispatches each action to its handler one at a time. A failing action
aborts the rest of that item's actions; other items carry on.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from itertools import groupby
from typing import Callable, Mapping, Optional

from pipesync.models.actions import ActionKind, WorkflowAction
from pipesync.models.tracked_item import (
    ChangeEvent,
    Delta,
    MonitoredField,
    PriorityTier,
    TrackedItem,
)
from pipesync.notify.base import NotificationSink
from pipesync.notify.messages import delta_message, failure_message, summary_message
from pipesync.sources.base import FieldUpdates, StateSource, split_updates
from pipesync.sync.errors import HandlerError
from pipesync.sync.retry import RetryPolicy

logger = logging.getLogger(__name__)

DERIVED_FIELDS_STEP = "DeriveFieldDefaults"


@dataclass
class ActionContext:
    """What a handler gets to see and do for one action."""

    action: WorkflowAction
    event: ChangeEvent
    update_fields: Callable[[FieldUpdates], None] = field(repr=False)
    notify: Callable[[str], None] = field(repr=False)
    # Monitored values already written for this item during the pass
    applied: Mapping[MonitoredField, Optional[str]] = field(default_factory=dict, repr=False)

    @property
    def item_id(self) -> str:
        return self.event.item_id

    @property
    def delta(self) -> Delta:
        return self.event.delta

    @property
    def tier(self) -> PriorityTier:
        return self.event.tier

    @property
    def item(self) -> Optional[TrackedItem]:
        return self.event.item

    @property
    def current_item(self) -> Optional[TrackedItem]:
        """The item as it stands after this pass's writes so far."""
        if self.event.item is None:
            return None
        return self.event.item.with_updates(dict(self.applied))

    @property
    def title(self) -> str:
        return self.event.title


# A handler returns False (or raises) to signal failure.
Handler = Callable[[str, ActionContext], Optional[bool]]


@dataclass
class ItemOutcome:
    """Result of processing one change event."""

    item_id: str
    tier: PriorityTier
    completed: list[WorkflowAction] = field(default_factory=list)
    skipped: list[WorkflowAction] = field(default_factory=list)
    unhandled: list[WorkflowAction] = field(default_factory=list)
    failed_step: str = ""
    error: str = ""
    applied_updates: dict[MonitoredField, Optional[str]] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return not self.failed_step

    def summary(self) -> str:
        if self.succeeded:
            done = ", ".join(a.label for a in self.completed) or "no actions"
            return f"{self.item_id}: OK ({done})"
        return f"{self.item_id}: FAILED at {self.failed_step}: {self.error}"


class WorkflowExecutor:
    """Dispatches change events to handlers with retry and per-item isolation.

    Args:
        source: State source used for derived-field and handler writes.
        notifier: Best-effort notification sink.
        handlers: One handler per routable ``ActionKind``.
        retry_policy: Wraps every external call (writes, notifications, handlers).
            Its timeout applies to writes and notifications, not to handlers.
        max_workers: Items of the same tier processed concurrently.
        summary_threshold: Above this many events, one summary message
            replaces the per-item change notifications.
    """

    def __init__(
        self,
        source: StateSource,
        notifier: NotificationSink,
        handlers: Mapping[ActionKind, Handler],
        retry_policy: Optional[RetryPolicy] = None,
        max_workers: int = 1,
        summary_threshold: Optional[int] = None,
    ):
        missing = [k.value for k in ActionKind.routable() if k not in handlers]
        if missing:
            raise ValueError(f"No handler registered for: {', '.join(missing)}")
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1: {max_workers}")

        self.source = source
        self.notifier = notifier
        self.handlers = dict(handlers)
        self.retry_policy = retry_policy or RetryPolicy()
        # Handlers run without the call timeout; their writes and notifications carry it
        self._handler_policy = replace(self.retry_policy, timeout=None)
        self.max_workers = max_workers
        self.summary_threshold = summary_threshold

    # ------------------------------------------------------------------
    # Batch processing
    # ------------------------------------------------------------------

    def execute(self, events: list[ChangeEvent]) -> list[ItemOutcome]:
        """Process events tier by tier; every CRITICAL item finishes before any HIGH item starts."""
        ordered = sorted(events, key=lambda e: e.tier)
        notify_each = True
        if self.summary_threshold is not None and len(ordered) > self.summary_threshold:
            self.notify(summary_message(ordered))
            notify_each = False

        outcomes: list[ItemOutcome] = []
        for tier, group in groupby(ordered, key=lambda e: e.tier):
            batch = list(group)
            logger.info("Processing %d %s item(s)", len(batch), tier.name)
            if self.max_workers > 1 and len(batch) > 1:
                with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="pipesync-item") as pool:
                    outcomes.extend(pool.map(lambda e: self.process_item(e, notify_each), batch))
            else:
                outcomes.extend(self.process_item(e, notify_each) for e in batch)
        return outcomes

    # ------------------------------------------------------------------
    # Single item
    # ------------------------------------------------------------------

    def process_item(self, event: ChangeEvent, notify_delta: bool = True) -> ItemOutcome:
        outcome = ItemOutcome(item_id=event.item_id, tier=event.tier)
        logger.info("Processing %s", event.summary())

        if notify_delta:
            self.notify(delta_message(event))

        def update_fields(updates: FieldUpdates) -> None:
            self._write_fields(event.item_id, updates, outcome)

        if event.derived_updates:
            try:
                update_fields(event.derived_updates)
            except Exception as exc:
                return self._fail(event, outcome, DERIVED_FIELDS_STEP, exc, list(event.actions))

        for index, action in enumerate(event.actions):
            if action.is_unhandled:
                logger.warning("%s: no route for action '%s', skipping", event.item_id, action.name)
                outcome.unhandled.append(action)
                continue

            context = ActionContext(
                action=action, event=event, update_fields=update_fields,
                notify=self.notify, applied=outcome.applied_updates,
            )
            try:
                self._dispatch(action, context)
            except Exception as exc:
                return self._fail(event, outcome, action.label, exc, list(event.actions[index + 1:]))
            outcome.completed.append(action)

        return outcome

    def _dispatch(self, action: WorkflowAction, context: ActionContext) -> None:
        handler = self.handlers[action.kind]
        result = self._handler_policy.call(
            handler, context.item_id, context,
            operation=f"{context.item_id} {action.label}",
        )
        if result is False:
            raise HandlerError(context.item_id, action.label, "handler reported failure")

    def _write_fields(self, item_id: str, updates: FieldUpdates, outcome: ItemOutcome) -> None:
        self.retry_policy.call(
            self.source.apply_field_updates, item_id, updates,
            operation=f"{item_id} field update",
        )
        monitored, _ = split_updates(updates)
        outcome.applied_updates.update(monitored)
        logger.info("%s: wrote %s", item_id, {f.value: v for f, v in monitored.items()} or dict(updates))

    def _fail(
        self,
        event: ChangeEvent,
        outcome: ItemOutcome,
        step: str,
        exc: Exception,
        remaining: list[WorkflowAction],
    ) -> ItemOutcome:
        outcome.failed_step = step
        outcome.error = str(exc)
        outcome.skipped = [a for a in remaining if not a.is_unhandled]
        logger.error(
            "%s: %s failed (%s: %s), skipping %d remaining action(s)",
            event.item_id, step, type(exc).__name__, exc, len(outcome.skipped),
        )
        self.notify(failure_message(event, step, str(exc)))
        return outcome

    def notify(self, message: str) -> None:
        """Send a notification; failures are logged and never propagate."""
        try:
            self.retry_policy.call(self.notifier.send, message, operation="notification")
        except Exception as exc:
            logger.warning("Notification could not be delivered: %s", exc)
