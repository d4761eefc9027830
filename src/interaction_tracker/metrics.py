"""
Prometheus metrics for the interaction tracker.

Collectors register on the global REGISTRY at import time; expose them with
the host application's existing Prometheus endpoint.
"""

from prometheus_client import Counter, Gauge, Histogram


# --- Recording ---

INTERACTIONS_RECORDED_TOTAL = Counter(
    "interaction_tracker_recorded_total",
    "Total number of interaction events recorded",
    ["kind"],
)

PENDING_EVENTS = Gauge(
    "interaction_tracker_pending_events",
    "Events currently held in the pending queue",
    ["tracker"],
)

EVENTS_EVICTED_TOTAL = Counter(
    "interaction_tracker_evicted_total",
    "Events discarded by the backpressure governor",
    ["reason"],
)

# --- Delivery ---

FLUSH_TOTAL = Counter(
    "interaction_tracker_flush_total",
    "Flush attempts by outcome",
    ["outcome"],
)

DELIVERY_LATENCY_MS = Histogram(
    "interaction_tracker_delivery_latency_ms",
    "Batch delivery latency in milliseconds",
    ["outcome"],
    buckets=[5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000],
)


class MetricsRegistry:
    """Centralized access to tracker metrics.

    Used by the recorder, governor and flush controller to record metrics.
    """

    interactions_recorded_total = INTERACTIONS_RECORDED_TOTAL
    pending_events = PENDING_EVENTS
    events_evicted_total = EVENTS_EVICTED_TOTAL
    flush_total = FLUSH_TOTAL
    delivery_latency_ms = DELIVERY_LATENCY_MS


# Singleton instance
metrics_registry = MetricsRegistry()
