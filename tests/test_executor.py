"""Tests for the workflow executor: ordering, isolation, retry and notifications."""

import threading
import time

from pipesync.models.actions import (
    CHECK_NEXT_STAGE_ELIGIBILITY,
    CONTINUE_PIPELINE_FROM_APPROVAL,
    MARK_VOICE_COMPLETE,
    REQUEST_REGENERATION,
    SYNC_DERIVED_FIELDS,
    SYNC_TIMESTAMPS_ONLY,
    ActionKind,
    unhandled,
)
from pipesync.models.tracked_item import (
    ChangeEvent,
    Delta,
    FieldChange,
    MonitoredField,
    PriorityTier,
    TrackedItem,
)
from pipesync.notify.base import MemoryNotifier
from pipesync.sources.memory import InMemoryStateSource
from pipesync.sync.errors import PermanentExternalError, TransientExternalError
from pipesync.sync.executor import DERIVED_FIELDS_STEP, WorkflowExecutor
from pipesync.sync.retry import RetryPolicy


def _recording_handlers(log: list, **overrides):
    """A handler per routable kind that appends (item_id, kind) to ``log``."""
    lock = threading.Lock()

    def make(kind):
        def handler(item_id, ctx):
            with lock:
                log.append((item_id, kind))
        return handler

    handlers = {kind: make(kind) for kind in ActionKind.routable()}
    for name, handler in overrides.items():
        handlers[ActionKind[name]] = handler
    return handlers


def _event(item_id: str, tier: PriorityTier, actions, **fields) -> ChangeEvent:
    delta = Delta({MonitoredField.STATUS: FieldChange("a", "b")})
    return ChangeEvent(
        item_id=item_id,
        delta=delta,
        tier=tier,
        actions=list(actions),
        item=TrackedItem(item_id, **fields),
    )


def _executor(handlers, items=(), notifier=None, **kwargs):
    source = InMemoryStateSource(items or [TrackedItem("A"), TrackedItem("B"), TrackedItem("C")])
    policy = kwargs.pop("retry_policy", RetryPolicy(max_attempts=3, base_delay=0.0, sleep=lambda d: None))
    return WorkflowExecutor(
        source=source,
        notifier=notifier or MemoryNotifier(),
        handlers=handlers,
        retry_policy=policy,
        **kwargs,
    )


def test_missing_handler_is_rejected():
    handlers = _recording_handlers([])
    del handlers[ActionKind.MARK_VOICE_COMPLETE]
    try:
        _executor(handlers)
    except ValueError as e:
        assert "MarkVoiceComplete" in str(e)
    else:
        raise AssertionError("expected ValueError")


def test_critical_items_run_before_normal_items():
    log = []
    executor = _executor(_recording_handlers(log))
    events = [
        _event("A", PriorityTier.NORMAL, [SYNC_TIMESTAMPS_ONLY]),
        _event("B", PriorityTier.MEDIUM, [MARK_VOICE_COMPLETE]),
        _event("C", PriorityTier.CRITICAL, [CONTINUE_PIPELINE_FROM_APPROVAL]),
    ]
    outcomes = executor.execute(events)

    assert [item for item, _ in log] == ["C", "B", "A"]
    assert [o.item_id for o in outcomes] == ["C", "B", "A"]
    assert all(o.succeeded for o in outcomes)


def test_actions_within_item_run_in_order():
    log = []
    executor = _executor(_recording_handlers(log))
    executor.execute([_event("A", PriorityTier.MEDIUM, [MARK_VOICE_COMPLETE, CHECK_NEXT_STAGE_ELIGIBILITY])])
    assert log == [
        ("A", ActionKind.MARK_VOICE_COMPLETE),
        ("A", ActionKind.CHECK_NEXT_STAGE_ELIGIBILITY),
    ]


def test_slow_handler_is_not_cut_off_by_call_timeout():
    log = []
    calls = []

    def mark_voice_complete(item_id, ctx):
        calls.append(item_id)
        log.append("voice start")
        time.sleep(0.3)
        log.append("voice end")

    def check_next(item_id, ctx):
        log.append("check start")

    handlers = _recording_handlers(
        [], MARK_VOICE_COMPLETE=mark_voice_complete, CHECK_NEXT_STAGE_ELIGIBILITY=check_next,
    )
    policy = RetryPolicy(max_attempts=3, base_delay=0.0, timeout=0.05, sleep=lambda d: None)
    executor = _executor(handlers, retry_policy=policy)
    [outcome] = executor.execute([
        _event("A", PriorityTier.MEDIUM, [MARK_VOICE_COMPLETE, CHECK_NEXT_STAGE_ELIGIBILITY]),
    ])

    assert outcome.succeeded
    assert calls == ["A"]
    assert log == ["voice start", "voice end", "check start"]


def test_handler_sees_item_after_derived_writes():
    seen = []

    def continue_pipeline(item_id, ctx):
        seen.append((ctx.item.voice, ctx.current_item.voice))

    executor = _executor(_recording_handlers([], CONTINUE_PIPELINE_FROM_APPROVAL=continue_pipeline))
    event = _event("A", PriorityTier.CRITICAL, [CONTINUE_PIPELINE_FROM_APPROVAL], approval="Approved")
    event.derived_updates = {MonitoredField.VOICE: "Not Started"}
    executor.execute([event])

    assert seen == [(None, "Not Started")]


def test_failure_skips_remaining_actions_but_not_other_items():
    log = []

    def broken(item_id, ctx):
        if item_id == "A":
            raise PermanentExternalError("validation failed")
        log.append((item_id, ActionKind.MARK_VOICE_COMPLETE))

    notifier = MemoryNotifier()
    executor = _executor(_recording_handlers(log, MARK_VOICE_COMPLETE=broken), notifier=notifier)
    outcomes = executor.execute([
        _event("A", PriorityTier.MEDIUM, [MARK_VOICE_COMPLETE, CHECK_NEXT_STAGE_ELIGIBILITY]),
        _event("B", PriorityTier.MEDIUM, [MARK_VOICE_COMPLETE, CHECK_NEXT_STAGE_ELIGIBILITY]),
    ])

    a, b = outcomes
    assert not a.succeeded
    assert a.failed_step == "MarkVoiceComplete"
    assert "validation failed" in a.error
    assert a.skipped == [CHECK_NEXT_STAGE_ELIGIBILITY]
    assert b.succeeded
    assert log == [
        ("B", ActionKind.MARK_VOICE_COMPLETE),
        ("B", ActionKind.CHECK_NEXT_STAGE_ELIGIBILITY),
    ]
    failures = [m for m in notifier.messages if m.startswith("Workflow action failed")]
    assert len(failures) == 1
    assert "A" in failures[0]


def test_handler_returning_false_fails_the_item():
    executor = _executor(_recording_handlers([], MARK_VOICE_COMPLETE=lambda item_id, ctx: False))
    [outcome] = executor.execute([_event("A", PriorityTier.MEDIUM, [MARK_VOICE_COMPLETE, CHECK_NEXT_STAGE_ELIGIBILITY])])
    assert outcome.failed_step == "MarkVoiceComplete"
    assert outcome.skipped == [CHECK_NEXT_STAGE_ELIGIBILITY]


def test_always_transient_handler_is_tried_max_retries_times():
    calls = []
    delays = []

    def flaky(item_id, ctx):
        calls.append(item_id)
        raise TransientExternalError("429")

    policy = RetryPolicy(max_attempts=4, base_delay=0.1, sleep=delays.append)
    executor = _executor(_recording_handlers([], MARK_VOICE_COMPLETE=flaky), retry_policy=policy)
    [outcome] = executor.execute([_event("A", PriorityTier.MEDIUM, [MARK_VOICE_COMPLETE])])

    assert len(calls) == 4
    assert delays == sorted(delays)
    assert len(delays) == 3
    assert not outcome.succeeded


def test_transient_failure_recovers():
    calls = []

    def flaky(item_id, ctx):
        calls.append(item_id)
        if len(calls) == 1:
            raise TransientExternalError("503")

    executor = _executor(_recording_handlers([], MARK_VOICE_COMPLETE=flaky))
    [outcome] = executor.execute([_event("A", PriorityTier.MEDIUM, [MARK_VOICE_COMPLETE])])
    assert outcome.succeeded
    assert len(calls) == 2


def test_unhandled_action_is_skipped_and_logged(caplog):
    log = []
    executor = _executor(_recording_handlers(log))
    [outcome] = executor.execute([
        _event("A", PriorityTier.NORMAL, [unhandled("PublishToYouTube"), SYNC_TIMESTAMPS_ONLY]),
    ])
    assert outcome.succeeded
    assert [a.name for a in outcome.unhandled] == ["PublishToYouTube"]
    assert log == [("A", ActionKind.SYNC_TIMESTAMPS_ONLY)]
    assert "PublishToYouTube" in caplog.text


def test_derived_updates_written_before_actions():
    seen = []

    def continue_pipeline(item_id, ctx):
        seen.append(executor.source.get(item_id).voice)

    executor = _executor(_recording_handlers([], CONTINUE_PIPELINE_FROM_APPROVAL=continue_pipeline))
    event = _event("A", PriorityTier.CRITICAL, [CONTINUE_PIPELINE_FROM_APPROVAL, SYNC_DERIVED_FIELDS])
    event.derived_updates = {MonitoredField.VOICE: "Not Started"}
    [outcome] = executor.execute([event])

    assert seen == ["Not Started"]
    assert outcome.applied_updates == {MonitoredField.VOICE: "Not Started"}


def test_derived_update_failure_fails_item():
    log = []
    executor = _executor(_recording_handlers(log), items=[TrackedItem("B")])
    event = _event("A", PriorityTier.CRITICAL, [CONTINUE_PIPELINE_FROM_APPROVAL])
    event.derived_updates = {MonitoredField.VOICE: "Not Started"}
    [outcome] = executor.execute([event])

    assert outcome.failed_step == DERIVED_FIELDS_STEP
    assert outcome.skipped == [CONTINUE_PIPELINE_FROM_APPROVAL]
    assert log == []


def test_handler_writes_are_recorded():
    def regenerate(item_id, ctx):
        ctx.update_fields({MonitoredField.APPROVAL: "Pending", "regenerating": "true"})

    executor = _executor(_recording_handlers([], REQUEST_REGENERATION=regenerate))
    [outcome] = executor.execute([
        _event("A", PriorityTier.CRITICAL, [REQUEST_REGENERATION]),
    ])
    assert outcome.applied_updates == {MonitoredField.APPROVAL: "Pending"}
    assert executor.source.get("A").extra["regenerating"] == "true"


def test_delta_notification_per_item():
    notifier = MemoryNotifier()
    executor = _executor(_recording_handlers([]), notifier=notifier)
    executor.execute([
        _event("A", PriorityTier.HIGH, [SYNC_TIMESTAMPS_ONLY]),
        _event("B", PriorityTier.HIGH, [SYNC_TIMESTAMPS_ONLY]),
    ])
    assert len(notifier.messages) == 2
    assert all(m.startswith("Status change [HIGH]") for m in notifier.messages)


def test_summary_notification_above_threshold():
    notifier = MemoryNotifier()
    executor = _executor(_recording_handlers([]), notifier=notifier, summary_threshold=1)
    executor.execute([
        _event("A", PriorityTier.HIGH, [SYNC_TIMESTAMPS_ONLY]),
        _event("B", PriorityTier.CRITICAL, [SYNC_TIMESTAMPS_ONLY]),
    ])
    assert len(notifier.messages) == 1
    assert notifier.messages[0].startswith("2 status changes detected")
    assert "CRITICAL: 1" in notifier.messages[0]


def test_notification_failure_does_not_fail_item():
    class BrokenNotifier:
        def send(self, message):
            raise PermanentExternalError("chat not found")

    log = []
    executor = _executor(_recording_handlers(log), notifier=BrokenNotifier())
    [outcome] = executor.execute([_event("A", PriorityTier.HIGH, [SYNC_TIMESTAMPS_ONLY])])
    assert outcome.succeeded
    assert log == [("A", ActionKind.SYNC_TIMESTAMPS_ONLY)]


def test_parallel_workers_keep_tier_order():
    log = []
    executor = _executor(_recording_handlers(log), max_workers=4)
    events = [
        _event("A", PriorityTier.NORMAL, [SYNC_TIMESTAMPS_ONLY]),
        _event("B", PriorityTier.CRITICAL, [CONTINUE_PIPELINE_FROM_APPROVAL]),
        _event("C", PriorityTier.CRITICAL, [CONTINUE_PIPELINE_FROM_APPROVAL]),
    ]
    outcomes = executor.execute(events)

    assert {item for item, _ in log[:2]} == {"B", "C"}
    assert log[2][0] == "A"
    assert [o.item_id for o in outcomes] == ["B", "C", "A"]
