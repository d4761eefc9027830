"""
Interaction recorder under an ingestion outage

Records product views against a fake ingestion endpoint that fails for a
while, then recovers. Shows deferral while signed out, failure counting,
failure-threshold eviction, and the final successful flush.

No network: the endpoint is an httpx.MockTransport.
"""

import asyncio
import json
import tempfile

import httpx
from loguru import logger

from interaction_tracker import (
    BackpressureLevel,
    DeliveryClient,
    FeedbackBus,
    FeedbackEvent,
    FileKeyValueStore,
    InteractionRecorder,
    StaticTokenAuthProvider,
    TrackerSettings,
)


class FlakyEndpoint:
    """Returns 503 for the first `fail_first` requests, then 200."""

    def __init__(self, fail_first: int):
        self._fail = fail_first
        self.received = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if self._fail > 0:
            self._fail -= 1
            return httpx.Response(503, text="ingestion unavailable")
        self.received += len(json.loads(request.content)["interactions"])
        return httpx.Response(200, json={"success": True})


async def main():
    logger.info("Interaction recorder outage demo")
    logger.info("=" * 70)

    events: list[FeedbackEvent] = []
    bus = FeedbackBus()

    async def observer(event: FeedbackEvent):
        events.append(event)
        if event.level == BackpressureLevel.HARD:
            logger.warning(f"   {event.reason}: dropped {event.dropped}, queue={event.queue_size}")

    bus.subscribe(observer)

    settings = TrackerSettings(
        _env_file=None,
        ingestion_url="http://ingest.local/functions/v1/update-product-analytics",
        max_batch_size=20,
        max_stored_interactions=60,
        max_retry_attempts=3,
    )
    endpoint = FlakyEndpoint(fail_first=3)
    http = httpx.AsyncClient(transport=httpx.MockTransport(endpoint))
    delivery = DeliveryClient(settings.ingestion_url, client=http)
    auth = StaticTokenAuthProvider()

    with tempfile.TemporaryDirectory() as root:
        async with InteractionRecorder(
            FileKeyValueStore(root), auth, settings, delivery=delivery, bus=bus
        ) as recorder:
            logger.info("Phase 1: signed out, 30 views (flush deferred)")
            for i in range(30):
                await recorder.record_view(100 + i % 5, "demo-user")
            await recorder.wait_idle()
            logger.info(f"   pending={recorder.pending_count}")

            logger.info("Phase 2: signed in, endpoint failing")
            auth.sign_in("demo-token")
            for i in range(3):
                await recorder.record_click(200 + i, "demo-user")
                await recorder.wait_idle()
                logger.info(
                    f"   pending={recorder.pending_count} failures={recorder.failure_count}"
                )

            logger.info("Phase 3: endpoint recovered")
            await recorder.record_view(300, "demo-user")
            await recorder.wait_idle()
            logger.info(f"   pending={recorder.pending_count}")

    await http.aclose()

    logger.info("=" * 70)
    logger.info(f"Endpoint accepted {endpoint.received} interactions")
    logger.info(f"Captured {len(events)} feedback events:")
    for i, event in enumerate(events, 1):
        logger.info(f"   {i}. {event.level.value.upper()} {event.reason} queue={event.queue_size}")


if __name__ == "__main__":
    asyncio.run(main())
