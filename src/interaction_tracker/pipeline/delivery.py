"""
HTTP delivery of interaction batches to the ingestion endpoint.

One call = one POST. The client never retries and never touches the pending
queue; the flush controller decides what a failure means.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from time import monotonic
from typing import Optional

import httpx
from loguru import logger

from ..errors import DeliveryError, RetryableDeliveryError, map_http_error, map_status
from ..metrics import metrics_registry
from ..models import InteractionBatch
from ..settings import TrackerSettings


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of a single delivery attempt.

    Attributes:
        success: True for any 2xx response
        diagnostic: Human-readable failure detail (None on success)
        status_code: HTTP status when a response was received
        latency_ms: Wall time of the attempt
        retryable: Failure looks transient (timeout, transport error, 5xx, 408, 429)
    """

    success: bool
    diagnostic: str | None = None
    status_code: int | None = None
    latency_ms: float = 0.0
    retryable: bool = False


class DeliveryClient:
    """Posts batches with a bearer token, bounded by an explicit deadline.

    Example:
        async with DeliveryClient("https://.../update-product-analytics") as client:
            result = await client.deliver(batch, token)
            if not result.success:
                logger.warning(result.diagnostic)

    Args:
        endpoint: Ingestion URL
        timeout_sec: Deadline for the whole request (connect + send + read)
        client: Optional shared httpx.AsyncClient; not closed by stop()
    """

    def __init__(
        self,
        endpoint: str,
        *,
        timeout_sec: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if timeout_sec <= 0:
            raise ValueError("timeout_sec must be > 0")
        self.endpoint = endpoint
        self.timeout_sec = timeout_sec
        self._client: Optional[httpx.AsyncClient] = client
        self._owns_client = client is None
        self._started = client is not None

    @classmethod
    def from_settings(cls, settings: TrackerSettings) -> "DeliveryClient":
        return cls(settings.ingestion_url, timeout_sec=settings.delivery_timeout_sec)

    async def start(self) -> None:
        if self._started:
            return
        self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout_sec))
        self._owns_client = True
        self._started = True
        logger.debug(f"Delivery client started: endpoint={self.endpoint}")

    async def stop(self) -> None:
        if not self._started:
            return
        if self._owns_client and self._client is not None:
            await self._client.aclose()
        self._client = None
        self._started = False
        logger.debug("Delivery client stopped")

    async def __aenter__(self) -> "DeliveryClient":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    async def deliver(self, batch: InteractionBatch, bearer_token: str) -> DeliveryResult:
        """POST `batch` once. Transport errors, timeouts and non-2xx become failures."""
        if not self._started:
            await self.start()

        headers = {"Authorization": f"Bearer {bearer_token}"}
        payload = batch.to_payload()
        t0 = monotonic()

        try:
            response = await asyncio.wait_for(
                self._client.post(self.endpoint, json=payload, headers=headers),
                timeout=self.timeout_sec,
            )
        except asyncio.TimeoutError:
            error = RetryableDeliveryError(f"delivery timed out after {self.timeout_sec:.1f}s")
            return self._finish(t0, error=error)
        except Exception as exc:
            return self._finish(t0, error=map_http_error(exc))

        status = response.status_code
        if 200 <= status < 300:
            return self._finish(t0, status=status)

        return self._finish(t0, error=map_status(status, response.text), status=status)

    def _finish(
        self, t0: float, *, error: Optional[DeliveryError] = None, status: int | None = None
    ) -> DeliveryResult:
        latency_ms = (monotonic() - t0) * 1000.0
        outcome = "success" if error is None else "failure"
        metrics_registry.delivery_latency_ms.labels(outcome=outcome).observe(latency_ms)
        logger.debug(
            f"Delivery {outcome}: status={status} latency={latency_ms:.1f}ms"
            + (f" detail={error}" if error is not None else "")
        )
        return DeliveryResult(
            success=error is None,
            diagnostic=str(error) if error is not None else None,
            status_code=status,
            latency_ms=latency_ms,
            retryable=isinstance(error, RetryableDeliveryError),
        )
