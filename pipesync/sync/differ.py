"""Field-level comparison of current state against the snapshot.

Every pass performs a full scan over items and monitored fields. There is
no incremental change log: the snapshot is the only memory the engine has,
so the diff can never drift away from it.
"""

from __future__ import annotations

from typing import Iterable, Optional

from pipesync.models.tracked_item import (
    ChangeCandidate,
    Delta,
    FieldChange,
    MonitoredField,
    TrackedItem,
)

# (field, old value, new value); None stands for empty
Transition = tuple[MonitoredField, Optional[str], Optional[str]]


class StateDiffer:
    """Computes per-item deltas between current and cached items.

    Args:
        ignored_transitions: Transitions that are never reported, e.g.
            automated ``("voice", "Not Ready", "Not Started")`` writes.
    """

    def __init__(self, ignored_transitions: Iterable[Transition] = ()):
        self.ignored_transitions = frozenset(ignored_transitions)

    def compute(
        self, current: list[TrackedItem], cached: list[TrackedItem]
    ) -> list[ChangeCandidate]:
        cached_by_id = {item.item_id: item for item in cached}
        candidates = []

        for item in current:
            previous = cached_by_id.get(item.item_id)
            if previous is None:
                # Arrival is not a change
                continue

            delta = self.diff_item(item, previous)
            if delta:
                candidates.append(ChangeCandidate(item=item, delta=delta))

        return candidates

    def diff_item(self, current: TrackedItem, cached: TrackedItem) -> Delta:
        changes = {}
        for monitored in MonitoredField:
            old, new = cached.get(monitored), current.get(monitored)
            if old == new:
                continue
            if (monitored, old, new) in self.ignored_transitions:
                continue
            changes[monitored] = FieldChange(old=old, new=new)
        return Delta(changes)
