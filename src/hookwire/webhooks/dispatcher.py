"""Event fan-out to subscribers.

The dispatcher is the public entry point. For each event it selects the
subscribed, healthy subscribers, applies payload filters and rate limits,
creates one Delivery per remaining subscriber and hands it to the retry
scheduler. Dispatch returns once deliveries are persisted and enqueued;
HTTP attempts run in the background.

Example:
    ```python
    from hookwire import WebhookDispatcher
    from hookwire.storage import InMemoryDeliveryStore, InMemorySubscriberRegistry

    async with WebhookDispatcher(registry, store) as dispatcher:
        delivery_ids = await dispatcher.dispatch("order.created", {"id": 1})
        await dispatcher.join()
    ```
"""

from __future__ import annotations

import json
from datetime import timedelta
from typing import TYPE_CHECKING, Any

import httpx

from hookwire.config import Settings
from hookwire.config import settings as default_settings
from hookwire.exceptions import (
    ConfigurationError,
    NotFoundError,
    RateLimitError,
    RegistryError,
    StorageError,
    ValidationError,
)
from hookwire.logging import get_logger
from hookwire.models import (
    UNFINISHED_STATES,
    Delivery,
    DeliveryState,
    DeliveryStats,
    SubscriberTestResult,
    utcnow,
)
from hookwire.storage import QdrantStorage, get_storage

from .executor import DeliveryExecutor
from .filters import matches_filters
from .ratelimit import InMemoryRateLimiter, RateLimiter
from .request import RequestBuilder, serialize_payload
from .scheduler import RetryScheduler
from .stats import StatisticsAggregator

if TYPE_CHECKING:
    from hookwire.models import Subscriber
    from hookwire.storage import DeliveryStore, SubscriberRegistry

logger = get_logger(__name__)

TEST_MESSAGE = "This is a test webhook"


class WebhookDispatcher:
    """Reliable outbound webhook delivery.

    One instance owns the HTTP client, the rate limiter and the retry
    scheduler. Create it once per process and share it.
    """

    def __init__(
        self,
        registry: SubscriberRegistry,
        store: DeliveryStore,
        settings: Settings | None = None,
        client: httpx.AsyncClient | None = None,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            registry: Source of subscriber records.
            store: Persistence for delivery records.
            settings: Settings to use. Defaults to the global settings.
            client: HTTP client. One is created (and closed) if not given.
            rate_limiter: Rate limiter. Defaults to an in-memory sliding window.
        """
        self._settings = settings or default_settings
        self._registry = registry
        self._store = store
        self._owned_storage: QdrantStorage | None = None

        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=self._settings.request_timeout_seconds,
        )
        self._rate_limiter = rate_limiter or InMemoryRateLimiter(
            window_seconds=self._settings.rate_limit_window_seconds,
        )

        self._builder = RequestBuilder(self._settings)
        self._executor = DeliveryExecutor(self._client, self._builder, self._settings)
        self._stats = StatisticsAggregator(registry)
        self._scheduler = RetryScheduler(
            self._executor,
            store,
            registry,
            self._stats,
            self._settings,
        )

    @classmethod
    def create(cls, settings: Settings | None = None) -> WebhookDispatcher:
        """Create a dispatcher with the storage backend named in settings.

        A Qdrant backend created here is owned by the dispatcher: it is
        initialized on start() and closed on close().

        Args:
            settings: Optional settings. Uses the global settings if None.

        Returns:
            Configured WebhookDispatcher instance.

        Example:
            ```python
            settings = Settings(storage_backend="qdrant")
            async with WebhookDispatcher.create(settings) as dispatcher:
                await dispatcher.dispatch("order.created", {"id": 1})
            ```
        """
        settings = settings or default_settings
        registry, store = get_storage(settings)
        dispatcher = cls(registry, store, settings=settings)
        if isinstance(store, QdrantStorage):
            dispatcher._owned_storage = store
        return dispatcher

    @property
    def scheduler(self) -> RetryScheduler:
        """The retry scheduler driving deliveries."""
        return self._scheduler

    async def start(self, recover: bool = True) -> int:
        """Start the retry timer and optionally resume unfinished deliveries.

        Returns:
            Number of recovered deliveries.
        """
        if self._owned_storage is not None and not self._owned_storage.initialized:
            await self._owned_storage.initialize()
        self._scheduler.start()
        if not recover:
            return 0
        return await self._scheduler.recover()

    async def join(self) -> None:
        """Wait until every enqueued delivery reaches a terminal state."""
        await self._scheduler.join()

    async def close(self) -> None:
        """Stop the scheduler and release the HTTP client and storage if owned."""
        await self._scheduler.stop()
        if self._owns_client:
            await self._client.aclose()
        if self._owned_storage is not None:
            await self._owned_storage.close()

    async def __aenter__(self) -> WebhookDispatcher:
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def dispatch(self, event: str, payload: Any) -> list[str]:
        """Fan an event out to every matching subscriber.

        Subscribers that fail their filters, are rate limited or are
        misconfigured are skipped without affecting the others.

        Args:
            event: Event name (e.g. "order.created").
            payload: JSON-serializable event payload.

        Returns:
            IDs of the deliveries created, one per accepted subscriber.

        Raises:
            ValidationError: If the payload is not JSON-serializable.
            RegistryError: If subscribers cannot be loaded.
            StorageError: If a delivery cannot be persisted.
        """
        body = serialize_payload(payload)
        # Filters and records see the payload exactly as transmitted
        data = json.loads(body)

        try:
            candidates = await self._registry.get_subscribers_for_event(event)
        except Exception as e:
            logger.error("Failed to load subscribers", event_name=event, error=str(e))
            raise RegistryError(f"Failed to load subscribers for {event}: {e}") from e

        if not candidates:
            logger.debug("No subscribers for event", event_name=event)
            return []

        delivery_ids: list[str] = []
        for subscriber in candidates:
            delivery = self._prepare_delivery(subscriber, event, data, body)
            if delivery is None:
                continue

            try:
                await self._store.save_delivery(delivery)
            except Exception as e:
                logger.error(
                    "Failed to persist delivery",
                    delivery_id=delivery.id,
                    subscriber_id=subscriber.id,
                    error=str(e),
                )
                raise StorageError(f"Failed to persist delivery {delivery.id}: {e}") from e

            self._scheduler.submit(delivery, subscriber)
            delivery_ids.append(delivery.id)

        logger.info(
            "Event dispatched",
            event_name=event,
            candidates=len(candidates),
            deliveries=len(delivery_ids),
        )
        return delivery_ids

    def _prepare_delivery(
        self,
        subscriber: Subscriber,
        event: str,
        data: Any,
        body: str,
    ) -> Delivery | None:
        log = logger.bind(subscriber_id=subscriber.id, event_name=event)

        if not subscriber.subscribes_to(event):
            log.debug("Subscriber not eligible, skipped")
            return None

        if not matches_filters(subscriber.filters, data):
            log.debug("Payload filtered out")
            return None

        try:
            request = self._builder.build(subscriber, event, body=body)
        except ConfigurationError as e:
            log.warning("Subscriber misconfigured, delivery skipped", error=e.message)
            return None

        if subscriber.rate_limit.enabled:
            limit = subscriber.rate_limit.max_per_window or self._settings.rate_limit_default
            try:
                self._rate_limiter.check_rate_limit(subscriber.id, limit)
            except RateLimitError as e:
                log.info("Rate limited, delivery skipped", retry_after=e.retry_after)
                return None

        return Delivery(
            subscriber_id=subscriber.id,
            event=event,
            payload=data,
            request=request,
            max_attempts=subscriber.retry.max_attempts,
        )

    async def cancel(self, delivery_id: str, reason: str = "cancelled") -> bool:
        """Cancel a delivery. See RetryScheduler.cancel."""
        return await self._scheduler.cancel(delivery_id, reason)

    async def test_subscriber(
        self,
        subscriber_id: str,
        payload: Any = None,
    ) -> SubscriberTestResult:
        """Send a single preview delivery to a subscriber.

        The request is signed and authenticated like a real delivery, but is
        attempted once, creates no delivery record and leaves subscriber
        statistics untouched.

        Args:
            subscriber_id: Subscriber to test.
            payload: Payload to send. Defaults to a generic test event.

        Returns:
            Preview outcome with the parsed response body.

        Raises:
            NotFoundError: If the subscriber does not exist.
        """
        subscriber = await self._registry.get_subscriber(subscriber_id)
        if subscriber is None:
            raise NotFoundError("Subscriber", subscriber_id)

        if payload is None:
            payload = {
                "event": self._settings.default_test_event,
                "timestamp": utcnow().isoformat(),
                "data": {"message": TEST_MESSAGE},
            }

        try:
            request = self._builder.build(subscriber, self._settings.default_test_event, payload)
        except (ConfigurationError, ValidationError) as e:
            logger.warning(
                "Subscriber test not sent", subscriber_id=subscriber_id, error=e.message
            )
            return SubscriberTestResult(success=False, error=e.message)

        result = await self._executor.send(request, subscriber)

        logger.info(
            "Subscriber test completed",
            subscriber_id=subscriber_id,
            success=result.success,
            status_code=result.status_code,
        )

        return SubscriberTestResult(
            success=result.success,
            status_code=result.status_code,
            latency_ms=result.latency_ms,
            response=_parse_body(result.response_body),
            error=result.error_message,
        )

    async def get_stats(self, subscriber_id: str, window_days: int = 30) -> DeliveryStats:
        """Summarize a subscriber's deliveries over the last ``window_days``."""
        since = utcnow() - timedelta(days=window_days)
        deliveries = await self._store.list_deliveries(subscriber_id, since=since)

        successful = [d for d in deliveries if d.state == DeliveryState.DELIVERED]
        failed = sum(1 for d in deliveries if d.state == DeliveryState.EXHAUSTED)
        pending = sum(1 for d in deliveries if d.state in UNFINISHED_STATES)

        latencies = [d.response.latency_ms for d in successful if d.response is not None]
        average = sum(latencies) / len(latencies) if latencies else 0.0
        total = len(deliveries)
        rate = len(successful) / total * 100 if total else 0.0

        return DeliveryStats(
            subscriber_id=subscriber_id,
            window_days=window_days,
            total=total,
            successful=len(successful),
            failed=failed,
            pending=pending,
            average_response_time=average,
            success_rate=rate,
        )


def _parse_body(body: str | None) -> Any:
    """Decode a JSON response body, falling back to the raw text."""
    if not body:
        return body
    try:
        return json.loads(body)
    except ValueError:
        return body
