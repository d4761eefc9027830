from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Callable, Optional

from loguru import logger

from .auth import AuthProvider
from .errors import StorageError
from .metrics import metrics_registry
from .models import InteractionEvent, InteractionKind
from .pipeline.delivery import DeliveryClient
from .pipeline.feedback import FeedbackBus
from .pipeline.flush import BatchDeliverer, FlushController, FlushOutcome, FlushState
from .pipeline.governor import BackpressureGovernor
from .pipeline.queue import PendingQueue
from .settings import TrackerSettings, get_settings
from .store import KeyValueStore, PendingQueueStore
from .utils import utc_now


class InteractionRecorder:
    """
    Best-effort recorder for view/click interactions.

    Events are queued locally, persisted after every change, and shipped in
    batches once `max_batch_size` are pending. Nothing here ever raises to
    the caller: failures are logged and the host application carries on.

    Usage:

        auth = StaticTokenAuthProvider()
        kv = FileKeyValueStore("~/.cache/shop")
        async with InteractionRecorder(kv, auth, TrackerSettings()) as recorder:
            await recorder.record_view(product_id, user_id)
            await recorder.record_click(product_id, user_id)
        # pending events flushed (if signed in) on context exit
    """

    def __init__(
        self,
        kv: KeyValueStore,
        auth: AuthProvider,
        settings: Optional[TrackerSettings] = None,
        *,
        delivery: Optional[BatchDeliverer] = None,
        bus: Optional[FeedbackBus] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._cfg = settings or get_settings()
        self._clock = clock

        self._queue = PendingQueue()
        self._store = PendingQueueStore(kv, key=self._cfg.storage_key)
        self._governor = BackpressureGovernor.from_settings(self._cfg, bus=bus)

        self._owns_delivery = delivery is None
        self._delivery = delivery or DeliveryClient.from_settings(self._cfg)
        self._controller = FlushController(
            self._queue,
            self._store,
            self._governor,
            self._delivery,
            auth,
            tracker_id=self._cfg.tracker_id,
        )

        self._started = False
        self._start_lock = asyncio.Lock()
        self._flush_task: Optional[asyncio.Task] = None
        self._auto_task: Optional[asyncio.Task] = None
        self._auto_stop: Optional[asyncio.Event] = None

    # --------------- context management

    async def __aenter__(self) -> "InteractionRecorder":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    # --------------- public API

    async def start(self) -> None:
        """Load the persisted queue and start the auto-flush timer if configured."""
        await self._ensure_started()
        if self._cfg.auto_flush_interval_sec is not None:
            self.start_auto_flush()

    async def record_view(self, subject_id: int, actor_id: str) -> None:
        await self._add(subject_id, actor_id, InteractionKind.VIEW)

    async def record_click(self, subject_id: int, actor_id: str) -> None:
        await self._add(subject_id, actor_id, InteractionKind.CLICK)

    async def flush(self) -> FlushOutcome:
        """Flush now and wait for the result. Never raises."""
        try:
            await self._ensure_started()
            await self.wait_idle()
            return await self._controller.flush_pending()
        except Exception:
            logger.exception("Failed to flush pending interactions")
            return FlushOutcome.FAILED

    async def wait_idle(self) -> None:
        """Wait until no size-triggered flush is running."""
        while self._flush_task is not None and not self._flush_task.done():
            await asyncio.wait({self._flush_task})

    @property
    def pending_count(self) -> int:
        return self._queue.size

    def pending_events(self) -> tuple[InteractionEvent, ...]:
        return self._queue.snapshot()

    @property
    def failure_count(self) -> int:
        return self._governor.failure_count

    @property
    def flush_state(self) -> FlushState:
        return self._controller.state

    # --------------- auto flush (optional, timer driven)

    def start_auto_flush(self, interval_sec: Optional[float] = None) -> None:
        """Also flush every `interval_sec` seconds, in addition to the size trigger."""
        interval = interval_sec if interval_sec is not None else self._cfg.auto_flush_interval_sec
        if interval is None:
            logger.info("Auto-flush is disabled - using size-based triggers only")
            return
        if interval <= 0:
            logger.warning(f"Ignoring non-positive auto-flush interval {interval}")
            return
        if self._auto_task is not None and not self._auto_task.done():
            logger.debug("Auto-flush already running")
            return

        self._auto_stop = asyncio.Event()
        self._auto_task = asyncio.create_task(
            self._auto_flush_loop(interval, self._auto_stop),
            name=f"{self._cfg.tracker_id}-auto-flush",
        )
        logger.info(f"Auto-flush started (every {interval:.1f}s)")

    async def stop_auto_flush(self) -> None:
        """Stop the timer. A timer flush already in flight runs to completion first."""
        task, self._auto_task = self._auto_task, None
        if task is None:
            return
        if self._auto_stop is not None:
            self._auto_stop.set()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Auto-flush stopped")

    async def aclose(self) -> None:
        """Stop the timer, settle in-flight work, optionally flush, release the client."""
        try:
            await self.stop_auto_flush()
            await self.wait_idle()
            if self._cfg.flush_on_close and self._queue:
                await self._controller.flush_pending()
        except Exception:
            logger.exception("Error while closing interaction recorder")
        finally:
            if self._owns_delivery and isinstance(self._delivery, DeliveryClient):
                try:
                    await self._delivery.stop()
                except Exception:
                    logger.exception("Error while stopping delivery client")

    # --------------- internals

    async def _ensure_started(self) -> None:
        if self._started:
            return
        async with self._start_lock:
            if self._started:
                return
            try:
                loaded = await self._store.load()
            except StorageError as exc:
                logger.error(f"Failed to load pending interactions from storage: {exc}")
                loaded = []

            if loaded:
                self._queue.extend(loaded)
                logger.info(f"Loaded {len(loaded)} pending interactions from storage")
                if await self._governor.enforce_cap(self._queue):
                    await self._store.save_quietly(self._queue.snapshot())
            self._track_size()
            self._started = True

    async def _add(self, subject_id: int, actor_id: str, kind: InteractionKind) -> None:
        try:
            await self._ensure_started()
            event = InteractionEvent(
                subject_id=subject_id, actor_id=actor_id, kind=kind, occurred_at=self._clock()
            )
            self._queue.append(event)
            metrics_registry.interactions_recorded_total.labels(kind=kind.value).inc()
            logger.debug(
                f"Tracked {kind.value} for subject {subject_id} (pending: {self._queue.size})"
            )

            await self._store.save_quietly(self._queue.snapshot())
            if await self._governor.enforce_cap(self._queue):
                await self._store.save_quietly(self._queue.snapshot())
            self._track_size()

            if self._governor.should_flush(self._queue.size):
                self._schedule_flush()
        except Exception:
            logger.exception("Failed to add interaction")

    def _schedule_flush(self) -> None:
        if self._flush_task is not None and not self._flush_task.done():
            return
        logger.info(
            f"Max batch size ({self._governor.max_batch_size}) reached, triggering flush"
        )
        self._flush_task = asyncio.create_task(
            self._controller.flush_pending(), name=f"{self._cfg.tracker_id}-flush"
        )

    async def _auto_flush_loop(self, interval: float, stop: asyncio.Event) -> None:
        # Only exits while waiting, never between delivery and reconciliation.
        while not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                await self.flush()

    def _track_size(self) -> None:
        metrics_registry.pending_events.labels(tracker=self._cfg.tracker_id).set(
            self._queue.size
        )
