"""
Custom exceptions for the interaction tracker.

None of these cross the public recorder boundary; they structure failures
between components so they can be logged and counted consistently.
"""

import httpx


class TrackerError(Exception):
    """Base error for the interaction tracker."""

    pass


class DeliveryError(TrackerError):
    """Batch could not be delivered to the ingestion endpoint."""

    pass


class RetryableDeliveryError(DeliveryError):
    """Transient transport failures (connect errors, timeouts, 5xx)."""

    pass


class DeliveryRejected(DeliveryError):
    """Endpoint answered with a non-retryable status (4xx)."""

    pass


class StorageError(TrackerError):
    """Pending-queue snapshot could not be read from or written to storage."""

    pass


class AuthUnavailable(TrackerError):
    """No authenticated session with a usable access token."""

    pass


def map_http_error(e: Exception) -> DeliveryError:
    if isinstance(e, (httpx.TimeoutException, TimeoutError)):
        return RetryableDeliveryError(f"timeout: {e}")
    if isinstance(e, httpx.TransportError):
        return RetryableDeliveryError(f"transport error: {type(e).__name__}: {e}")
    if isinstance(e, httpx.HTTPStatusError):
        return map_status(e.response.status_code, e.response.text)
    return DeliveryError(f"{type(e).__name__}: {e}")


def map_status(status_code: int, body: str = "") -> DeliveryError:
    detail = f"HTTP {status_code}" + (f" - {body[:200]}" if body else "")
    if status_code >= 500 or status_code in (408, 429):
        return RetryableDeliveryError(detail)
    return DeliveryRejected(detail)
