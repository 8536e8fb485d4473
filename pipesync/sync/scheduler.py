"""Fixed-interval trigger for reconciliation passes.

Each trigger calls ``ReconciliationLoop.run_once``. Because the loop skips
a trigger while a pass is still running, passes never overlap even when a
pass outlasts the interval. A failed pass is logged and the next one runs
at the normal interval.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Optional

from pipesync.sync.errors import StateSourceError
from pipesync.sync.loop import PassResult, ReconciliationLoop

logger = logging.getLogger(__name__)


class PollingScheduler:
    """Runs reconciliation passes every ``interval_sec`` seconds."""

    def __init__(self, loop: ReconciliationLoop, interval_sec: float):
        if interval_sec <= 0:
            raise ValueError(f"Interval must be > 0 seconds: {interval_sec}")
        self.loop = loop
        self.interval_sec = interval_sec
        self.passes_run = 0
        self.passes_failed = 0
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def trigger(self) -> Optional[PassResult]:
        """Run one pass, containing any failure."""
        start = time.monotonic()
        try:
            result = self.loop.run_once()
        except StateSourceError as exc:
            self.passes_failed += 1
            logger.error("Pass failed, state source unavailable: %s", exc)
            return None
        except Exception:
            self.passes_failed += 1
            logger.exception("Pass failed unexpectedly")
            return None

        if not result.skipped:
            self.passes_run += 1
        logger.info("Pass took %.2fs", time.monotonic() - start)
        return result

    def run_forever(self, max_passes: Optional[int] = None) -> None:
        """Block, triggering a pass every interval until ``stop()`` is called."""
        logger.info("Polling every %ss", self.interval_sec)
        triggers = 0
        while not self._stop_event.is_set():
            self.trigger()
            triggers += 1
            if max_passes is not None and triggers >= max_passes:
                break
            self._stop_event.wait(self.interval_sec)
        logger.info("Polling stopped after %d pass(es)", self.passes_run)

    def start(self) -> None:
        if self.running:
            raise RuntimeError("Scheduler already running")
        self._stop_event.clear()
        self._thread = threading.Thread(target=self.run_forever, name="pipesync-scheduler", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
