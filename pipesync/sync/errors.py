"""Error taxonomy for reconciliation passes.

Transient errors are retried with backoff, permanent ones fail at once.
Everything except a failure to list the state source is contained at the
item boundary.
"""

from __future__ import annotations

import socket

import httpx

# HTTP statuses worth retrying: rate limit, version conflict, and 5xx.
RETRIABLE_STATUS_CODES = frozenset({409, 429})


class PipelineSyncError(Exception):
    """Base class for all pipesync errors."""


class TransientExternalError(PipelineSyncError):
    """Rate limit, conflict, 5xx, timeout or connection failure."""


class PermanentExternalError(PipelineSyncError):
    """Validation, auth or not-found failure. Never retried."""


class PersistenceError(PipelineSyncError):
    """Snapshot read or write failure. Always non-fatal."""


class StateSourceError(PipelineSyncError):
    """The state source could not be listed; the whole pass fails."""


class HandlerError(PipelineSyncError):
    """A workflow action failed for one item."""

    def __init__(self, item_id: str, action: str, message: str, attempts: int = 1):
        super().__init__(f"{item_id}: {action} failed after {attempts} attempt(s): {message}")
        self.item_id = item_id
        self.action = action
        self.attempts = attempts


def is_retriable_status(status_code: int) -> bool:
    return status_code in RETRIABLE_STATUS_CODES or 500 <= status_code < 600


def is_transient(exc: BaseException) -> bool:
    """Classify an exception raised by an external call."""
    if isinstance(exc, TransientExternalError):
        return True
    if isinstance(exc, PipelineSyncError):
        return False
    if isinstance(exc, httpx.HTTPStatusError):
        return is_retriable_status(exc.response.status_code)
    if isinstance(exc, (httpx.TimeoutException, httpx.NetworkError)):
        return True
    # socket.gaierror is an OSError, not a ConnectionError
    return isinstance(exc, (TimeoutError, ConnectionError, socket.gaierror))
