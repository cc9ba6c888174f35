"""Rolling per-subscriber health statistics.

Counter updates are serialized with one lock per subscriber, so concurrent
deliveries to different subscribers never contend and deliveries to the
same subscriber never lose an increment.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import TYPE_CHECKING

from hookwire.logging import get_logger
from hookwire.models import HealthStatus, utcnow

if TYPE_CHECKING:
    from hookwire.models import Outcome, Subscriber
    from hookwire.storage import SubscriberRegistry

logger = get_logger(__name__)


def apply_outcome(
    subscriber: Subscriber,
    outcome: Outcome,
    latency_ms: float = 0.0,
    error: str | None = None,
) -> Subscriber:
    """Fold one terminal outcome into a subscriber's statistics in place.

    Success promotes an ``error`` subscriber back to ``active`` and clears
    its last error. Failure sets the status to ``error``. The average
    latency covers successful deliveries only.
    """
    stats = subscriber.stats
    now = utcnow()

    stats.total_deliveries += 1
    stats.last_delivery_at = now

    if outcome == "success":
        stats.successful_deliveries += 1
        stats.last_success_at = now
        count = stats.successful_deliveries
        stats.average_response_time_ms = (
            stats.average_response_time_ms * (count - 1) + latency_ms
        ) / count
        if subscriber.status == HealthStatus.ERROR:
            subscriber.status = HealthStatus.ACTIVE
        subscriber.last_error = None
    else:
        stats.failed_deliveries += 1
        stats.last_failure_at = now
        subscriber.status = HealthStatus.ERROR
        if error:
            subscriber.last_error = error

    subscriber.updated_at = now
    return subscriber


class StatisticsAggregator:
    """Records delivery outcomes against subscriber statistics.

    Example:
        ```python
        aggregator = StatisticsAggregator(registry)
        await aggregator.record(subscriber, "success", latency_ms=42.0)
        ```
    """

    def __init__(self, registry: SubscriberRegistry) -> None:
        self._registry = registry
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def record(
        self,
        subscriber: Subscriber,
        outcome: Outcome,
        latency_ms: float = 0.0,
        error: str | None = None,
    ) -> Subscriber:
        """Record a successful or terminally failed delivery.

        The registry copy is re-read under the subscriber's lock so updates
        from concurrent deliveries are applied one after another.

        Args:
            subscriber: Subscriber the delivery belonged to.
            outcome: "success" or "failure".
            latency_ms: Latency of the successful attempt.
            error: Failure message stored as the subscriber's last error.

        Returns:
            The updated subscriber.
        """
        async with self._locks[subscriber.id]:
            current = await self._registry.get_subscriber(subscriber.id) or subscriber
            apply_outcome(current, outcome, latency_ms, error)
            await self._registry.save_subscriber(current)

        logger.debug(
            "Subscriber statistics updated",
            subscriber_id=current.id,
            outcome=outcome,
            status=current.status.value,
            total=current.stats.total_deliveries,
        )
        return current
