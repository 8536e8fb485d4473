"""Plain-text notification bodies."""

from __future__ import annotations

from pipesync.models.tracked_item import ChangeEvent, PriorityTier


def delta_message(event: ChangeEvent) -> str:
    lines = [f"Status change [{event.tier.name}]", f"{event.item_id} - {event.title}"]
    for monitored, change in event.delta.items():
        lines.append(f"{monitored.value}: {change.old or '(empty)'} -> {change.new or '(empty)'}")
    return "\n".join(lines)


def failure_message(event: ChangeEvent, action: str, error: str) -> str:
    return "\n".join([
        "Workflow action failed",
        f"{event.item_id} - {event.title}",
        f"Action: {action}",
        f"Error: {error}",
        "Manual intervention may be required",
    ])


def summary_message(events: list[ChangeEvent]) -> str:
    counts = {tier: 0 for tier in PriorityTier}
    for event in events:
        counts[event.tier] += 1
    tiers = ", ".join(f"{tier.name}: {n}" for tier, n in counts.items() if n)
    lines = [f"{len(events)} status changes detected ({tiers})"]
    for event in events:
        lines.append(f"- {event.item_id}: {event.delta.describe()}")
    return "\n".join(lines)
