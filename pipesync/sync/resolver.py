"""Declarative mapping from field changes to workflow actions.

Rules are keyed by ``(field, new value)``. A rule with value ``"*"`` matches
any new value. Fields with no matching rule fall back to
``SyncTimestampsOnly`` so every non-empty delta yields at least one action.
When several fields change at once their action lists are concatenated
with duplicates removed.

Derived-field rules live here too: some transitions imply defaults for
other fields that are still empty (approval -> Approved means voice
generation is "Not Started").
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

import yaml

from pipesync.models.actions import (
    BROADCAST_STATUS_SYNC,
    CHECK_NEXT_STAGE_ELIGIBILITY,
    CONTINUE_PIPELINE_FROM_APPROVAL,
    MARK_EDITING_COMPLETE,
    MARK_VOICE_COMPLETE,
    NOTIFY_FINAL_COMPLETION,
    REQUEST_REGENERATION,
    SYNC_DERIVED_FIELDS,
    SYNC_TIMESTAMPS_ONLY,
    WorkflowAction,
)
from pipesync.models.tracked_item import (
    Delta,
    FieldChange,
    MonitoredField,
    TrackedItem,
    value_key,
)

ANY_VALUE = "*"


@dataclass(frozen=True)
class ActionRule:
    """Actions to run when ``field`` changes to ``value``."""

    field: MonitoredField
    value: str
    actions: tuple[WorkflowAction, ...]
    description: str = ""

    def __post_init__(self) -> None:
        if not self.actions:
            raise ValueError(f"Rule for {self.field.value}={self.value} has no actions")

    def matches(self, monitored: MonitoredField, change: FieldChange) -> bool:
        if monitored is not self.field:
            return False
        return self.value == ANY_VALUE or value_key(self.value) == value_key(change.new)


@dataclass(frozen=True)
class DerivedFieldRule:
    """When ``trigger_field`` becomes ``trigger_value``, default ``target_field``."""

    trigger_field: MonitoredField
    trigger_value: str
    target_field: MonitoredField
    default_value: str
    description: str = ""

    def triggered_by(self, delta: Delta) -> bool:
        if self.trigger_field not in delta:
            return False
        return value_key(delta[self.trigger_field].new) == value_key(self.trigger_value)


DEFAULT_ACTION_RULES: tuple[ActionRule, ...] = (
    ActionRule(
        MonitoredField.APPROVAL, "Approved", (CONTINUE_PIPELINE_FROM_APPROVAL,),
        "Script approved: continue with voice script and thumbnails",
    ),
    ActionRule(
        MonitoredField.APPROVAL, "NeedsChanges", (REQUEST_REGENERATION,),
        "Script rejected: regenerate it",
    ),
    ActionRule(
        MonitoredField.VOICE, "Completed", (MARK_VOICE_COMPLETE, CHECK_NEXT_STAGE_ELIGIBILITY),
        "Voice generation finished",
    ),
    ActionRule(
        MonitoredField.EDITING, "Completed", (MARK_EDITING_COMPLETE, NOTIFY_FINAL_COMPLETION),
        "Video editing finished",
    ),
    ActionRule(
        MonitoredField.STATUS, ANY_VALUE, (SYNC_DERIVED_FIELDS, BROADCAST_STATUS_SYNC),
        "Primary status changed",
    ),
)

DEFAULT_DERIVED_RULES: tuple[DerivedFieldRule, ...] = (
    DerivedFieldRule(
        MonitoredField.APPROVAL, "Approved", MonitoredField.VOICE, "Not Started",
        "Approved scripts are ready for voice generation",
    ),
    DerivedFieldRule(
        MonitoredField.STATUS, "Script Separated", MonitoredField.APPROVAL, "Pending",
        "Separated scripts wait for approval",
    ),
)

FALLBACK_ACTIONS: tuple[WorkflowAction, ...] = (SYNC_TIMESTAMPS_ONLY,)


def _extend_unique(target: list[WorkflowAction], actions: Iterable[WorkflowAction]) -> None:
    for action in actions:
        if action not in target:
            target.append(action)


class ActionResolver:
    """Resolves a delta to an ordered, deduplicated action list."""

    def __init__(
        self,
        rules: Iterable[ActionRule] = DEFAULT_ACTION_RULES,
        derived_rules: Iterable[DerivedFieldRule] = DEFAULT_DERIVED_RULES,
        fallback: Iterable[WorkflowAction] = FALLBACK_ACTIONS,
    ):
        self.rules = tuple(rules)
        self.derived_rules = tuple(derived_rules)
        self.fallback = tuple(fallback) or FALLBACK_ACTIONS

    def resolve(self, delta: Delta) -> list[WorkflowAction]:
        actions: list[WorkflowAction] = []
        for monitored, change in delta.items():
            _extend_unique(actions, self.actions_for(monitored, change))

        if any(rule.triggered_by(delta) for rule in self.derived_rules):
            _extend_unique(actions, [SYNC_DERIVED_FIELDS])

        return actions

    def actions_for(self, monitored: MonitoredField, change: FieldChange) -> tuple[WorkflowAction, ...]:
        for rule in self.rules:
            if rule.matches(monitored, change):
                return rule.actions
        return self.fallback

    def derived_updates(self, item: TrackedItem, delta: Delta) -> dict[MonitoredField, str]:
        """Defaults implied by ``delta`` for fields ``item`` has left empty.

        A field that already holds a value, in progress or otherwise, is never
        overwritten.
        """
        updates: dict[MonitoredField, str] = {}
        for rule in self.derived_rules:
            if not rule.triggered_by(delta):
                continue
            if item.get(rule.target_field) is None and rule.target_field not in updates:
                updates[rule.target_field] = rule.default_value
        return updates


def _parse_field(name: str) -> MonitoredField:
    try:
        return MonitoredField(name)
    except ValueError:
        valid = ", ".join(f.value for f in MonitoredField)
        raise ValueError(f"Unknown monitored field '{name}' (expected one of: {valid})") from None


def load_action_rules(path: str | Path) -> ActionResolver:
    """Load a resolver from a YAML rules file.

    Either section may be omitted, in which case the defaults apply.
    Unknown action names become ``Unhandled(name)``.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}

    rules = DEFAULT_ACTION_RULES
    if "rules" in data:
        rules = tuple(
            ActionRule(
                field=_parse_field(rule_data["field"]),
                value=str(rule_data.get("value", ANY_VALUE)),
                actions=tuple(WorkflowAction.parse(a) for a in rule_data.get("actions", [])),
                description=rule_data.get("description", ""),
            )
            for rule_data in data["rules"]
        )

    derived = DEFAULT_DERIVED_RULES
    if "derived" in data:
        derived = tuple(
            DerivedFieldRule(
                trigger_field=_parse_field(rule_data["when"]["field"]),
                trigger_value=str(rule_data["when"]["value"]),
                target_field=_parse_field(rule_data["set"]["field"]),
                default_value=str(rule_data["set"]["value"]),
                description=rule_data.get("description", ""),
            )
            for rule_data in data["derived"]
        )

    return ActionResolver(rules=rules, derived_rules=derived)
