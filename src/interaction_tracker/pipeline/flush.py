"""
Batch flush controller.

Snapshot the pending queue, deliver it once with the current bearer token,
then reconcile the queue with the outcome. At most one flush runs at a time.
"""

from __future__ import annotations

from enum import Enum
from typing import Protocol

from loguru import logger

from ..auth import AuthProvider
from ..errors import AuthUnavailable
from ..metrics import metrics_registry
from ..models import InteractionBatch
from ..store import PendingQueueStore
from .delivery import DeliveryResult
from .governor import BackpressureGovernor
from .queue import PendingQueue


class FlushState(str, Enum):
    IDLE = "idle"
    FLUSHING = "flushing"


class FlushOutcome(str, Enum):
    DELIVERED = "delivered"
    FAILED = "failed"
    SKIPPED_IN_FLIGHT = "skipped_in_flight"
    SKIPPED_EMPTY = "skipped_empty"
    DEFERRED_UNAUTHENTICATED = "deferred_unauthenticated"


class BatchDeliverer(Protocol):
    async def deliver(self, batch: InteractionBatch, bearer_token: str) -> DeliveryResult: ...


class FlushController:
    """Single-flight flush of the pending queue.

    The state flag is only safe on a single event loop; every caller must run
    on the loop that owns the queue.

    Args:
        queue: Shared pending queue
        store: Durable snapshot store, saved after every queue change
        governor: Failure accounting and eviction
        delivery: Anything with `deliver(batch, token) -> DeliveryResult`
        auth: Session collaborator gating delivery
        tracker_id: Label for metrics
    """

    def __init__(
        self,
        queue: PendingQueue,
        store: PendingQueueStore,
        governor: BackpressureGovernor,
        delivery: BatchDeliverer,
        auth: AuthProvider,
        *,
        tracker_id: str = "interactions",
    ):
        self._queue = queue
        self._store = store
        self._governor = governor
        self._delivery = delivery
        self._auth = auth
        self._tracker_id = tracker_id
        self._state = FlushState.IDLE

    @property
    def state(self) -> FlushState:
        return self._state

    @property
    def is_flushing(self) -> bool:
        return self._state is FlushState.FLUSHING

    async def flush_pending(self) -> FlushOutcome:
        """Attempt delivery of everything currently pending. Never raises."""
        if self._state is FlushState.FLUSHING:
            logger.debug("Flush already in progress, skipping")
            return self._done(FlushOutcome.SKIPPED_IN_FLIGHT)

        if not self._queue:
            logger.debug("No pending interactions to flush")
            return self._done(FlushOutcome.SKIPPED_EMPTY)

        # Claimed before the first await so concurrent callers bail out above.
        self._state = FlushState.FLUSHING
        try:
            try:
                token = await self._bearer_token()
            except AuthUnavailable as exc:
                logger.info(f"{exc}, keeping {self._queue.size} interactions in storage")
                return self._done(FlushOutcome.DEFERRED_UNAUTHENTICATED)

            batch = InteractionBatch(events=self._queue.snapshot())
            if not batch.events:
                return self._done(FlushOutcome.SKIPPED_EMPTY)

            logger.info(f"Flushing {len(batch)} pending interactions (batch={batch.batch_id})")
            try:
                result = await self._delivery.deliver(batch, token)
            except Exception as exc:
                result = DeliveryResult(
                    success=False, diagnostic=f"{type(exc).__name__}: {exc}"
                )

            if result.success:
                await self._on_success(batch)
                return self._done(FlushOutcome.DELIVERED)

            await self._on_failure(batch, result)
            return self._done(FlushOutcome.FAILED)
        except Exception:
            logger.exception("Unexpected error while flushing interactions")
            return self._done(FlushOutcome.FAILED)
        finally:
            self._state = FlushState.IDLE

    async def _bearer_token(self) -> str:
        """Current access token.

        Raises:
            AuthUnavailable: not signed in, no usable session, or the provider failed
        """
        try:
            if not await self._auth.is_authenticated():
                raise AuthUnavailable("User not authenticated")
            session = await self._auth.current_session()
        except AuthUnavailable:
            raise
        except Exception as exc:
            raise AuthUnavailable(
                f"Auth provider failed ({type(exc).__name__}: {exc})"
            ) from exc

        if session is None or not session.is_usable():
            raise AuthUnavailable("No valid session found")
        return session.access_token

    async def _on_success(self, batch: InteractionBatch) -> None:
        removed = self._queue.remove_exact(batch.events)
        await self._store.save_quietly(self._queue.snapshot())
        await self._governor.record_success(self._queue)
        self._track_size()
        logger.info(
            f"Successfully flushed {removed} interactions "
            f"(batch={batch.batch_id}, still pending: {self._queue.size})"
        )

    async def _on_failure(self, batch: InteractionBatch, result: DeliveryResult) -> None:
        attempt = self._governor.failure_count + 1
        kind = "transient" if result.retryable else "rejected"
        logger.error(
            f"Failed to flush interactions (attempt {attempt}/"
            f"{self._governor.max_retry_attempts}, {kind}, batch={batch.batch_id}): "
            f"{result.diagnostic}"
        )
        if await self._governor.record_failure(self._queue):
            await self._store.save_quietly(self._queue.snapshot())
            self._track_size()

    def _done(self, outcome: FlushOutcome) -> FlushOutcome:
        metrics_registry.flush_total.labels(outcome=outcome.value).inc()
        return outcome

    def _track_size(self) -> None:
        metrics_registry.pending_events.labels(tracker=self._tracker_id).set(self._queue.size)
