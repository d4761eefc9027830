from __future__ import annotations

from typing import Optional

from loguru import logger

from ..metrics import metrics_registry
from ..settings import TrackerSettings
from .feedback import BackpressureLevel, FeedbackBus, FeedbackEvent
from .queue import PendingQueue


class BackpressureGovernor:
    """Storage cap, failure-driven eviction and the size trigger.

    Eviction always favors recency: when events must go, the oldest by
    occurred_at go first.

    Args:
        max_stored: Hard cap on queued events
        max_batch_size: Queue length at which a flush is triggered
        max_retry_attempts: Consecutive failed flushes before halving the queue
        bus: Optional FeedbackBus for eviction and recovery signals
        tracker_id: Label used in feedback events
    """

    def __init__(
        self,
        max_stored: int = 500,
        max_batch_size: int = 75,
        max_retry_attempts: int = 3,
        *,
        bus: Optional[FeedbackBus] = None,
        tracker_id: str = "interactions",
    ):
        if max_stored <= 0:
            raise ValueError("max_stored must be > 0")
        if max_batch_size <= 0:
            raise ValueError("max_batch_size must be > 0")
        if max_retry_attempts <= 0:
            raise ValueError("max_retry_attempts must be > 0")

        self._max_stored = max_stored
        self._max_batch_size = max_batch_size
        self._max_retry_attempts = max_retry_attempts
        self._bus = bus
        self._tracker_id = tracker_id
        self._failures = 0

    @classmethod
    def from_settings(
        cls, settings: TrackerSettings, *, bus: Optional[FeedbackBus] = None
    ) -> "BackpressureGovernor":
        return cls(
            max_stored=settings.max_stored_interactions,
            max_batch_size=settings.max_batch_size,
            max_retry_attempts=settings.max_retry_attempts,
            bus=bus,
            tracker_id=settings.tracker_id,
        )

    @property
    def max_stored(self) -> int:
        return self._max_stored

    @property
    def max_batch_size(self) -> int:
        return self._max_batch_size

    @property
    def max_retry_attempts(self) -> int:
        return self._max_retry_attempts

    @property
    def failure_count(self) -> int:
        return self._failures

    def should_flush(self, length: int) -> bool:
        return length >= self._max_batch_size

    async def enforce_cap(self, queue: PendingQueue) -> int:
        """Trim the queue to max_stored most-recent events. Returns dropped count."""
        if queue.size <= self._max_stored:
            return 0

        dropped = queue.retain_most_recent(self._max_stored)
        logger.warning(
            f"Max interactions limit ({self._max_stored}) exceeded, "
            f"discarded {dropped} oldest events"
        )
        metrics_registry.events_evicted_total.labels(reason="capacity").inc(dropped)
        await self._publish(queue, BackpressureLevel.HARD, "capacity_evicted", dropped)
        return dropped

    async def record_failure(self, queue: PendingQueue) -> bool:
        """Count a failed delivery attempt.

        On reaching max_retry_attempts, keeps only the most recent half of the
        queue (floor) and resets the counter.

        Returns:
            True if events were discarded
        """
        self._failures += 1
        if self._failures < self._max_retry_attempts:
            logger.debug(f"Delivery failure {self._failures}/{self._max_retry_attempts}")
            await self._publish(queue, BackpressureLevel.SOFT, "delivery_failed", 0)
            return False

        keep = queue.size // 2
        dropped = queue.retain_most_recent(keep)
        self._failures = 0
        logger.warning(
            f"Max retry attempts ({self._max_retry_attempts}) reached, "
            f"discarded {dropped} oldest events (kept {queue.size})"
        )
        metrics_registry.events_evicted_total.labels(reason="failure_threshold").inc(dropped)
        await self._publish(queue, BackpressureLevel.HARD, "failure_threshold_evicted", dropped)
        return True

    async def record_success(self, queue: PendingQueue) -> None:
        recovering = self._failures > 0
        self._failures = 0
        if recovering:
            await self._publish(queue, BackpressureLevel.OK, "delivery_recovered", 0)

    async def _publish(
        self, queue: PendingQueue, level: BackpressureLevel, reason: str, dropped: int
    ) -> None:
        if self._bus is None:
            return
        await self._bus.publish(
            FeedbackEvent(
                tracker_id=self._tracker_id,
                queue_size=queue.size,
                capacity=self._max_stored,
                level=level,
                reason=reason,
                dropped=dropped,
            )
        )
