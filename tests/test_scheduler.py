"""Tests for the polling scheduler."""

import tempfile
from pathlib import Path

from pipesync.handlers.pipeline import default_handlers
from pipesync.models.tracked_item import TrackedItem
from pipesync.notify.base import MemoryNotifier
from pipesync.sources.memory import InMemoryStateSource
from pipesync.sync.errors import PermanentExternalError
from pipesync.sync.executor import WorkflowExecutor
from pipesync.sync.loop import ReconciliationLoop
from pipesync.sync.retry import NO_RETRY
from pipesync.sync.scheduler import PollingScheduler
from pipesync.sync.snapshot_store import SnapshotStore


def _loop(tmpdir: str) -> ReconciliationLoop:
    source = InMemoryStateSource([TrackedItem("A", status="Processing")])
    executor = WorkflowExecutor(source, MemoryNotifier(), default_handlers(), retry_policy=NO_RETRY)
    return ReconciliationLoop(source, SnapshotStore(Path(tmpdir) / "snapshot.json"), executor)


def test_run_forever_with_limit():
    with tempfile.TemporaryDirectory() as tmpdir:
        scheduler = PollingScheduler(_loop(tmpdir), interval_sec=0.01)
        scheduler.run_forever(max_passes=3)
        assert scheduler.passes_run == 3
        assert scheduler.passes_failed == 0


def test_failed_pass_is_contained():
    with tempfile.TemporaryDirectory() as tmpdir:
        loop = _loop(tmpdir)

        def unavailable():
            raise PermanentExternalError("offline")

        loop.source.list_tracked_items = unavailable
        scheduler = PollingScheduler(loop, interval_sec=0.01)
        scheduler.run_forever(max_passes=2)

        assert scheduler.passes_failed == 2
        assert scheduler.passes_run == 0
        assert not loop.store.path.exists()


def test_start_and_stop():
    with tempfile.TemporaryDirectory() as tmpdir:
        scheduler = PollingScheduler(_loop(tmpdir), interval_sec=60)
        scheduler.start()
        assert scheduler.running
        scheduler.stop(timeout=5)
        assert not scheduler.running
        assert scheduler.passes_failed == 0


def test_invalid_interval():
    with tempfile.TemporaryDirectory() as tmpdir:
        try:
            PollingScheduler(_loop(tmpdir), interval_sec=0)
        except ValueError:
            pass
        else:
            raise AssertionError("expected ValueError")
