"""First-match-wins urgency tiers for a delta.

The tier fixes cross-item processing order within a pass, so the rule
order below is part of the contract.
"""

from __future__ import annotations

from pipesync.models.tracked_item import Delta, FieldKind, PriorityTier

_TIER_RULES: list[tuple[FieldKind, PriorityTier]] = [
    (FieldKind.APPROVAL, PriorityTier.CRITICAL),
    (FieldKind.LIFECYCLE, PriorityTier.HIGH),
    (FieldKind.SUB_STAGE, PriorityTier.MEDIUM),
]


def classify(delta: Delta) -> PriorityTier:
    changed = delta.changed_kinds()
    for kind, tier in _TIER_RULES:
        if kind in changed:
            return tier
    return PriorityTier.NORMAL
