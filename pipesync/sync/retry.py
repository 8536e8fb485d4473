"""Retry policy shared by every external call.

Delay before attempt ``n + 1`` is ``min(base_delay * 2 ** (n - 1), max_delay)``.
Only errors accepted by ``is_retriable`` are retried; anything else is
raised on the spot.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from typing import Any, Callable, TypeVar

from pipesync.sync.errors import PipelineSyncError, TransientExternalError, is_transient

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryExhaustedError(PipelineSyncError):
    """A transient error persisted through every allowed attempt.

    Not itself retriable, so nested policies do not multiply attempts.
    """

    def __init__(self, operation: str, attempts: int, last_error: BaseException):
        super().__init__(f"{operation} failed after {attempts} attempts: {last_error}")
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error


@dataclass
class RetryPolicy:
    """Bounded exponential backoff with an optional per-call timeout."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    is_retriable: Callable[[BaseException], bool] = is_transient
    timeout: float | None = None
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1: {self.max_attempts}")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("Retry delays must be non-negative")

    def delay_for(self, attempt: int) -> float:
        """Delay after the given (1-based) failed attempt."""
        return min(self.base_delay * 2 ** (attempt - 1), self.max_delay)

    def call(
        self,
        fn: Callable[..., T],
        *args: Any,
        operation: str = "external call",
        **kwargs: Any,
    ) -> T:
        """Invoke ``fn`` under this policy and return its result."""
        for attempt in range(1, self.max_attempts + 1):
            try:
                return self._invoke(fn, args, kwargs, operation)
            except Exception as exc:
                if not self.is_retriable(exc):
                    raise
                if attempt == self.max_attempts:
                    logger.error("%s failed after %d attempts: %s", operation, attempt, exc)
                    raise RetryExhaustedError(operation, attempt, exc) from exc
                delay = self.delay_for(attempt)
                logger.warning(
                    "%s attempt %d failed, retrying in %.2fs: %s",
                    operation, attempt, delay, exc,
                )
                self.sleep(delay)
        raise AssertionError("unreachable")

    def _invoke(self, fn: Callable[..., T], args: tuple, kwargs: dict, operation: str) -> T:
        if self.timeout is None:
            return fn(*args, **kwargs)

        # An abandoned call keeps its worker thread; the pass moves on.
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="pipesync-call")
        future = pool.submit(fn, *args, **kwargs)
        try:
            return future.result(timeout=self.timeout)
        except FuturesTimeoutError:
            if not future.done():
                raise TransientExternalError(
                    f"{operation} timed out after {self.timeout}s"
                ) from None
            raise
        finally:
            pool.shutdown(wait=False)


NO_RETRY = RetryPolicy(max_attempts=1, base_delay=0.0)
