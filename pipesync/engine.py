"""Build a reconciliation loop from settings.

Every collaborator can be passed in explicitly; anything omitted is built
from the settings. Nothing here is a module-level singleton.
"""

from __future__ import annotations

import logging
from typing import Mapping, Optional

from pipesync.config import Settings
from pipesync.handlers.pipeline import default_handlers
from pipesync.models.actions import ActionKind
from pipesync.notify.base import LogNotifier, NotificationSink
from pipesync.notify.telegram import TelegramNotifier
from pipesync.sources.base import StateSource
from pipesync.sources.yaml_document import YamlDocumentSource
from pipesync.sync.differ import StateDiffer
from pipesync.sync.executor import Handler, WorkflowExecutor
from pipesync.sync.loop import ReconciliationLoop
from pipesync.sync.resolver import ActionResolver, load_action_rules
from pipesync.sync.retry import RetryPolicy
from pipesync.sync.snapshot_store import SnapshotStore

logger = logging.getLogger(__name__)


def build_notifier(settings: Settings) -> NotificationSink:
    if settings.telegram_configured:
        return TelegramNotifier(
            settings.telegram_bot_token,
            settings.telegram_chat_id,
            timeout=settings.call_timeout or 30.0,
        )
    logger.info("Telegram not configured, notifications go to the log")
    return LogNotifier()


def build_retry_policy(settings: Settings) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=settings.max_retries,
        base_delay=settings.retry_base_delay,
        max_delay=settings.retry_max_delay,
        timeout=settings.call_timeout,
    )


def build_engine(
    settings: Settings,
    source: Optional[StateSource] = None,
    notifier: Optional[NotificationSink] = None,
    handlers: Optional[Mapping[ActionKind, Handler]] = None,
    store: Optional[SnapshotStore] = None,
    retry_policy: Optional[RetryPolicy] = None,
) -> ReconciliationLoop:
    issues = settings.validate()
    if issues:
        raise ValueError(f"Invalid configuration: {'; '.join(issues)}")

    retry_policy = retry_policy or build_retry_policy(settings)
    resolver = load_action_rules(settings.rules_path) if settings.rules_path else ActionResolver()
    executor = WorkflowExecutor(
        source=source or YamlDocumentSource(settings.state_path),
        notifier=notifier or build_notifier(settings),
        handlers=handlers or default_handlers(),
        retry_policy=retry_policy,
        max_workers=settings.max_workers,
        summary_threshold=settings.summary_threshold,
    )
    return ReconciliationLoop(
        source=executor.source,
        store=store or SnapshotStore(settings.snapshot_path),
        executor=executor,
        differ=StateDiffer(settings.ignored_transitions),
        resolver=resolver,
        retry_policy=retry_policy,
    )
