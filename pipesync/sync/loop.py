"""One reconciliation pass: read, diff, classify, resolve, execute, commit.

The snapshot store is read once at the start of a pass and written once at
the end, after every item has been attempted. Passes never overlap: a pass
requested while another is running is skipped.
"""

from __future__ import annotations

import logging
import threading
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from pipesync.models.lifecycle import LifecycleStage, infer_stage, is_expected_transition
from pipesync.models.tracked_item import (
    ChangeCandidate,
    ChangeEvent,
    Delta,
    PriorityTier,
    Snapshot,
    TrackedItem,
)
from pipesync.sources.base import StateSource
from pipesync.sync.differ import StateDiffer
from pipesync.sync.errors import StateSourceError
from pipesync.sync.executor import ItemOutcome, WorkflowExecutor
from pipesync.sync.priority import classify
from pipesync.sync.resolver import ActionResolver
from pipesync.sync.retry import RetryPolicy
from pipesync.sync.snapshot_store import SnapshotStats, SnapshotStore

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class PassResult:
    """What one reconciliation pass saw and did."""

    started_at: str
    finished_at: str = ""
    skipped: bool = False
    first_run: bool = False
    items_read: int = 0
    events: list[ChangeEvent] = field(default_factory=list)
    outcomes: list[ItemOutcome] = field(default_factory=list)
    committed: bool = False

    @property
    def changes_detected(self) -> int:
        return len(self.events)

    @property
    def failed_items(self) -> list[str]:
        return [o.item_id for o in self.outcomes if not o.succeeded]

    def summary(self) -> str:
        if self.skipped:
            return "Pass skipped: another pass is still running"
        if self.first_run:
            return f"Initial snapshot of {self.items_read} items (committed: {self.committed})"
        failed = len(self.failed_items)
        return (
            f"{self.items_read} items read, {self.changes_detected} changes, "
            f"{failed} failed, committed: {self.committed}"
        )


@dataclass
class MonitorStats:
    """Diagnostic view of the snapshot and the last pass."""

    snapshot: SnapshotStats
    stage_counts: dict[str, int] = field(default_factory=dict)
    pass_running: bool = False
    last_pass: Optional[PassResult] = None


class ReconciliationLoop:
    """Orchestrates reconciliation passes over injected collaborators."""

    def __init__(
        self,
        source: StateSource,
        store: SnapshotStore,
        executor: WorkflowExecutor,
        differ: Optional[StateDiffer] = None,
        resolver: Optional[ActionResolver] = None,
        classifier: Callable[[Delta], PriorityTier] = classify,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.source = source
        self.store = store
        self.executor = executor
        self.differ = differ or StateDiffer()
        self.resolver = resolver or ActionResolver()
        self.classifier = classifier
        self.retry_policy = retry_policy or executor.retry_policy
        self._lock = threading.Lock()
        self.last_pass: Optional[PassResult] = None

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    # ------------------------------------------------------------------
    # Passes
    # ------------------------------------------------------------------

    def run_once(self) -> PassResult:
        """Run one pass, or skip it if a pass is already in progress.

        Raises:
            StateSourceError: the state source could not be listed. Nothing
                is committed in that case.
        """
        if not self._lock.acquire(blocking=False):
            logger.warning("Reconciliation pass already running, skipping trigger")
            return PassResult(started_at=_now(), finished_at=_now(), skipped=True)
        try:
            result = self._run_pass()
        finally:
            self._lock.release()
        self.last_pass = result
        return result

    def _run_pass(self) -> PassResult:
        result = PassResult(started_at=_now())
        cached = self.store.load()
        current = self._read_current()
        result.items_read = len(current)
        result.first_run = cached.is_empty

        candidates = self.differ.compute(current, cached.items)
        result.events = [self.build_event(c) for c in candidates]

        if result.first_run:
            logger.info("First run: recording %d items without processing", len(current))
        elif not result.events:
            logger.info("No manual status changes detected")
        else:
            logger.info("Detected %d manual status change(s)", len(result.events))
            result.outcomes = self.executor.execute(result.events)

        committed_items = self._apply_outcomes(current, result.outcomes)
        result.committed = self.store.save(Snapshot(items=committed_items))
        if not result.committed:
            logger.warning("Snapshot not committed; the same changes will be detected next pass")

        result.finished_at = _now()
        logger.info("Pass finished: %s", result.summary())
        return result

    def _read_current(self) -> list[TrackedItem]:
        try:
            return self.retry_policy.call(self.source.list_tracked_items, operation="list tracked items")
        except StateSourceError:
            raise
        except Exception as exc:
            raise StateSourceError(f"Could not list tracked items: {exc}") from exc

    def build_event(self, candidate: ChangeCandidate) -> ChangeEvent:
        item, delta = candidate.item, candidate.delta
        self._check_transition(item, delta)
        return ChangeEvent(
            item_id=item.item_id,
            delta=delta,
            tier=self.classifier(delta),
            actions=self.resolver.resolve(delta),
            item=item,
            derived_updates=self.resolver.derived_updates(item, delta),
        )

    def _check_transition(self, item: TrackedItem, delta: Delta) -> None:
        previous = item.with_updates({f: change.old for f, change in delta.items()})
        old_stage, new_stage = infer_stage(previous), infer_stage(item)
        if not is_expected_transition(old_stage, new_stage):
            logger.warning(
                "%s: unexpected lifecycle transition %s -> %s",
                item.item_id, old_stage.value, new_stage.value,
            )

    @staticmethod
    def _apply_outcomes(current: list[TrackedItem], outcomes: list[ItemOutcome]) -> list[TrackedItem]:
        """Fold the engine's own successful writes into the state to commit."""
        written = {o.item_id: o.applied_updates for o in outcomes if o.applied_updates}
        if not written:
            return list(current)
        return [
            item.with_updates(written[item.item_id]) if item.item_id in written else item
            for item in current
        ]

    # ------------------------------------------------------------------
    # Operational surface
    # ------------------------------------------------------------------

    def refresh_snapshot(self) -> PassResult:
        """Commit the current state without detecting or processing changes."""
        with self._lock:
            result = PassResult(started_at=_now())
            current = self._read_current()
            result.items_read = len(current)
            result.committed = self.store.save_items(current)
            result.finished_at = _now()
        logger.info("Snapshot refreshed with %d items", result.items_read)
        return result

    def clear_snapshot(self) -> bool:
        with self._lock:
            return self.store.clear()

    def get_snapshot_stats(self) -> MonitorStats:
        stats = MonitorStats(
            snapshot=self.store.stats(),
            pass_running=self.is_running,
            last_pass=self.last_pass,
        )
        if stats.snapshot.exists:
            counts = Counter(infer_stage(item) for item in self.store.load().items)
            stats.stage_counts = {stage.value: counts[stage] for stage in LifecycleStage if counts[stage]}
        return stats

    def health_check(self) -> dict[str, Any]:
        checks: dict[str, Any] = {"snapshot": self.store.health_check()}
        try:
            count = len(self.source.list_tracked_items())
            checks["source"] = {"status": "healthy", "items": count}
        except Exception as exc:
            checks["source"] = {"status": "unhealthy", "error": str(exc)}

        notifier_check = getattr(self.executor.notifier, "health_check", None)
        if notifier_check is not None:
            checks["notifier"] = {"status": "healthy" if notifier_check() else "unhealthy"}

        healthy = all(c.get("status") == "healthy" for c in checks.values())
        return {"status": "healthy" if healthy else "unhealthy", "checks": checks}
