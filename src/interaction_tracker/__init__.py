"""
Interaction Tracker

Client-side batching and durable delivery of user interaction events
(product views and clicks) to a remote ingestion endpoint.

Usage:
    from interaction_tracker import (
        InteractionRecorder,
        FileKeyValueStore,
        StaticTokenAuthProvider,
        TrackerSettings,
    )

    auth = StaticTokenAuthProvider()
    recorder = InteractionRecorder(FileKeyValueStore("./.tracker"), auth, TrackerSettings())
    await recorder.start()

    await recorder.record_view(42, "user-1")
    auth.sign_in(access_token)
    await recorder.flush()
"""

from .auth import AuthProvider, StaticTokenAuthProvider
from .errors import (
    AuthUnavailable,
    DeliveryError,
    DeliveryRejected,
    RetryableDeliveryError,
    StorageError,
    TrackerError,
)
from .models import AuthSession, InteractionBatch, InteractionEvent, InteractionKind
from .pipeline import (
    BackpressureGovernor,
    BackpressureLevel,
    DeliveryClient,
    DeliveryResult,
    FeedbackBus,
    FeedbackEvent,
    FlushController,
    FlushOutcome,
    FlushState,
    PendingQueue,
)
from .recorder import InteractionRecorder
from .settings import TrackerSettings, get_settings
from .store import FileKeyValueStore, InMemoryKeyValueStore, KeyValueStore, PendingQueueStore

__version__ = "1.0.0"
__all__ = [
    "InteractionRecorder",
    "TrackerSettings",
    "get_settings",
    # models
    "InteractionEvent",
    "InteractionKind",
    "InteractionBatch",
    "AuthSession",
    # collaborators
    "AuthProvider",
    "StaticTokenAuthProvider",
    "KeyValueStore",
    "InMemoryKeyValueStore",
    "FileKeyValueStore",
    "PendingQueueStore",
    # pipeline
    "PendingQueue",
    "BackpressureGovernor",
    "DeliveryClient",
    "DeliveryResult",
    "FlushController",
    "FlushOutcome",
    "FlushState",
    "FeedbackBus",
    "FeedbackEvent",
    "BackpressureLevel",
    # errors
    "TrackerError",
    "DeliveryError",
    "RetryableDeliveryError",
    "DeliveryRejected",
    "StorageError",
    "AuthUnavailable",
]
