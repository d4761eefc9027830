"""
Backpressure feedback for the interaction tracker.

Eviction and recovery signals from the backpressure governor, for hosts that
want to surface them (a diagnostics panel, an outage alert). Nothing is
published unless the governor was given a bus.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable

from loguru import logger


class BackpressureLevel(str, Enum):
    """Backpressure severity levels."""

    OK = "ok"  # Queue drained by a successful flush
    SOFT = "soft"  # Delivery failing, nothing discarded yet
    HARD = "hard"  # Events were discarded


@dataclass(frozen=True)
class FeedbackEvent:
    """Immutable backpressure feedback event.

    Attributes:
        tracker_id: Identifies the tracker instance (e.g. "interactions")
        queue_size: Queue depth after the triggering action
        capacity: Maximum stored events
        level: Backpressure severity (OK, SOFT, HARD)
        reason: Context (e.g. "capacity_evicted", "failure_threshold_evicted")
        dropped: Number of events discarded by this action
    """

    tracker_id: str
    queue_size: int
    capacity: int
    level: BackpressureLevel
    reason: str | None = None
    dropped: int = 0

    @property
    def utilization(self) -> float:
        """Queue utilization as a fraction (0.0 to 1.0)."""
        return self.queue_size / self.capacity if self.capacity > 0 else 0.0


FeedbackSubscriber = Callable[[FeedbackEvent], Awaitable[None]]

_SEVERITY = {BackpressureLevel.OK: 0, BackpressureLevel.SOFT: 1, BackpressureLevel.HARD: 2}


class FeedbackBus:
    """Fans governor signals out to async subscribers.

    Each subscriber sees events at or above its `min_level`, in registration
    order. A subscriber that raises is logged and skipped.

    Example:
        bus = FeedbackBus()

        async def on_eviction(event: FeedbackEvent):
            logger.warning(f"dropped {event.dropped} interactions ({event.reason})")

        cancel = bus.subscribe(on_eviction, min_level=BackpressureLevel.HARD)
        ...
        cancel()
    """

    def __init__(self) -> None:
        self._subs: list[tuple[FeedbackSubscriber, BackpressureLevel]] = []

    def subscribe(
        self, callback: FeedbackSubscriber, *, min_level: BackpressureLevel = BackpressureLevel.OK
    ) -> Callable[[], None]:
        """Register `callback`. Returns a function that removes it again."""
        entry = (callback, min_level)
        self._subs.append(entry)

        def cancel() -> None:
            if entry in self._subs:
                self._subs.remove(entry)

        return cancel

    async def publish(self, event: FeedbackEvent) -> int:
        """Deliver `event` to matching subscribers. Returns how many accepted it."""
        delivered = 0
        for callback, min_level in list(self._subs):
            if _SEVERITY[event.level] < _SEVERITY[min_level]:
                continue
            try:
                await callback(event)
                delivered += 1
            except Exception as exc:
                logger.warning(
                    f"Feedback subscriber failed on {event.reason}: {type(exc).__name__}: {exc}"
                )
        return delivered
