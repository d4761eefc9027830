"""Delivery pipeline

Pending queue → flush controller → delivery client, with:
- PendingQueue (ordered, recency-based trimming, identity removal)
- BackpressureGovernor (hard cap, failure-threshold eviction, size trigger)
- FlushController (single-flight, auth-gated, snapshot reconciliation)
- DeliveryClient (httpx POST with bearer token and deadline)
- FeedbackBus for eviction/recovery signals
"""

from .queue import PendingQueue
from .feedback import BackpressureLevel, FeedbackBus, FeedbackEvent
from .governor import BackpressureGovernor
from .delivery import DeliveryClient, DeliveryResult
from .flush import BatchDeliverer, FlushController, FlushOutcome, FlushState

__all__ = [
    # state
    "PendingQueue",
    # feedback
    "BackpressureLevel",
    "FeedbackBus",
    "FeedbackEvent",
    # policies
    "BackpressureGovernor",
    # runtime
    "BatchDeliverer",
    "DeliveryClient",
    "DeliveryResult",
    "FlushController",
    "FlushOutcome",
    "FlushState",
]
