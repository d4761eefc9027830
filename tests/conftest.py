"""
Pytest configuration and fixtures for interaction-tracker.

Provides cross-platform event loop configuration and shared collaborators
(in-memory storage, static auth, deterministic clock, recording delivery).
"""

import asyncio
import sys
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from interaction_tracker import (
    DeliveryResult,
    FeedbackBus,
    InMemoryKeyValueStore,
    InteractionBatch,
    InteractionEvent,
    InteractionKind,
    StaticTokenAuthProvider,
    TrackerSettings,
)

# Set policy *before* pytest-asyncio creates any loops
if sys.platform.startswith("win"):
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())


BASE_TIME = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class StepClock:
    """Strictly increasing UTC clock: each call advances one second."""

    def __init__(self, start: datetime = BASE_TIME):
        self._next = start

    def __call__(self) -> datetime:
        now = self._next
        self._next = now + timedelta(seconds=1)
        return now


class RecordingDelivery:
    """Delivery stub that records batches and answers from a script."""

    def __init__(self, results: Optional[list[bool]] = None, *, default: bool = True):
        self._results = list(results or [])
        self._default = default
        self.batches: list[InteractionBatch] = []
        self.tokens: list[str] = []
        self.gate: Optional[asyncio.Event] = None

    async def deliver(self, batch: InteractionBatch, bearer_token: str) -> DeliveryResult:
        self.batches.append(batch)
        self.tokens.append(bearer_token)
        if self.gate is not None:
            await self.gate.wait()
        ok = self._results.pop(0) if self._results else self._default
        if ok:
            return DeliveryResult(success=True, status_code=200)
        return DeliveryResult(
            success=False, diagnostic="HTTP 503 - unavailable", status_code=503, retryable=True
        )

    @property
    def calls(self) -> int:
        return len(self.batches)


class GatedKeyValueStore(InMemoryKeyValueStore):
    """In-memory store whose next write can be held open until released."""

    def __init__(self):
        super().__init__()
        self._gate: Optional[asyncio.Event] = None
        self.holding = False

    def hold_next_write(self) -> asyncio.Event:
        self._gate = asyncio.Event()
        return self._gate

    async def set(self, key: str, value: bytes) -> None:
        gate, self._gate = self._gate, None
        if gate is not None:
            self.holding = True
            await gate.wait()
            self.holding = False
        await super().set(key, value)


def make_event(
    n: int, *, subject_id: int = 10, actor_id: str = "u1", kind=InteractionKind.VIEW
) -> InteractionEvent:
    return InteractionEvent(
        subject_id=subject_id,
        actor_id=actor_id,
        kind=kind,
        occurred_at=BASE_TIME + timedelta(seconds=n),
    )


@pytest.fixture
def kv():
    """Fresh in-memory key/value store."""
    return InMemoryKeyValueStore()


@pytest.fixture
def auth():
    """Signed-in auth provider with a non-expiring token."""
    return StaticTokenAuthProvider("test-token")


@pytest.fixture
def bus():
    """Private FeedbackBus so tests never touch the process singleton."""
    return FeedbackBus()


@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def settings():
    """Settings with the production thresholds and no env influence."""
    return TrackerSettings(
        _env_file=None,
        ingestion_url="http://ingest.test/functions/v1/update-product-analytics",
        max_batch_size=75,
        max_stored_interactions=500,
        max_retry_attempts=3,
        flush_on_close=False,
    )


@pytest.fixture
def delivery():
    return RecordingDelivery()


@pytest.fixture
def event_factory():
    """make_event(n) -> event with occurred_at = BASE_TIME + n seconds."""
    return make_event


@pytest.fixture
def delivery_factory():
    """RecordingDelivery(results=[True, False, ...], default=True)."""
    return RecordingDelivery


@pytest.fixture
def gated_kv():
    return GatedKeyValueStore()


@pytest.fixture
def until():
    """await until(predicate) -> yields to the loop until predicate() holds."""

    async def _until(predicate, *, rounds: int = 200, delay: float = 0.0):
        for _ in range(rounds):
            if predicate():
                return
            await asyncio.sleep(delay)
        raise AssertionError("condition not reached")

    return _until
