from __future__ import annotations

from typing import Iterable, Iterator

from ..models import InteractionEvent
from ..utils import most_recent


class PendingQueue:
    """Ordered in-memory queue of events awaiting delivery.

    Only the recorder appends; only the flush controller and the governor
    remove. Every mutation replaces the backing list, so snapshots handed
    out earlier never change underneath their holder.
    """

    def __init__(self, events: Iterable[InteractionEvent] = ()) -> None:
        self._items: list[InteractionEvent] = list(events)

    @property
    def size(self) -> int:
        return len(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[InteractionEvent]:
        return iter(tuple(self._items))

    def __bool__(self) -> bool:
        return bool(self._items)

    def snapshot(self) -> tuple[InteractionEvent, ...]:
        """Immutable copy of the current contents, in order."""
        return tuple(self._items)

    def append(self, event: InteractionEvent) -> None:
        self._items = [*self._items, event]

    def extend(self, events: Iterable[InteractionEvent]) -> None:
        self._items = [*self._items, *events]

    def remove_exact(self, events: Iterable[InteractionEvent]) -> int:
        """Remove the given event objects (by identity), keep everything else.

        Events no longer present (e.g. evicted meanwhile) are ignored.

        Returns:
            Number of events removed
        """
        ids = {id(e) for e in events}
        if not ids:
            return 0
        kept = [e for e in self._items if id(e) not in ids]
        removed = len(self._items) - len(kept)
        self._items = kept
        return removed

    def retain_most_recent(self, keep: int) -> int:
        """Keep the `keep` most recent events by occurred_at, in original order.

        Returns:
            Number of events dropped
        """
        before = len(self._items)
        if keep >= before:
            return 0
        self._items = most_recent(self._items, keep, key=lambda e: e.occurred_at)
        return before - len(self._items)
