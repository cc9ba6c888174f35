"""Process-local implementations of the storage contracts.

Records are copied on the way in and on the way out, so callers never hold a
reference to the stored object.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from hookwire.models import UNFINISHED_STATES

from .base import DeliveryStore, SubscriberRegistry

if TYPE_CHECKING:
    from hookwire.models import Delivery, Subscriber


class InMemorySubscriberRegistry(SubscriberRegistry):
    """Dictionary-backed subscriber registry."""

    def __init__(self, subscribers: list[Subscriber] | None = None) -> None:
        self._subscribers: dict[str, Subscriber] = {}
        for subscriber in subscribers or []:
            self._subscribers[subscriber.id] = subscriber.model_copy(deep=True)

    async def get_subscriber(self, subscriber_id: str) -> Subscriber | None:
        subscriber = self._subscribers.get(subscriber_id)
        return subscriber.model_copy(deep=True) if subscriber else None

    async def get_subscribers_for_event(self, event: str) -> list[Subscriber]:
        return [
            s.model_copy(deep=True) for s in self._subscribers.values() if s.subscribes_to(event)
        ]

    async def save_subscriber(self, subscriber: Subscriber) -> str:
        self._subscribers[subscriber.id] = subscriber.model_copy(deep=True)
        return subscriber.id


class InMemoryDeliveryStore(DeliveryStore):
    """Dictionary-backed delivery store."""

    def __init__(self) -> None:
        self._deliveries: dict[str, Delivery] = {}

    async def save_delivery(self, delivery: Delivery) -> str:
        self._deliveries[delivery.id] = delivery.model_copy(deep=True)
        return delivery.id

    async def get_delivery(self, delivery_id: str) -> Delivery | None:
        delivery = self._deliveries.get(delivery_id)
        return delivery.model_copy(deep=True) if delivery else None

    async def list_deliveries(
        self,
        subscriber_id: str,
        since: datetime | None = None,
        limit: int = 10_000,
    ) -> list[Delivery]:
        deliveries = [
            d.model_copy(deep=True)
            for d in self._deliveries.values()
            if d.subscriber_id == subscriber_id and (since is None or d.created_at >= since)
        ]
        deliveries.sort(key=lambda d: d.created_at, reverse=True)
        return deliveries[:limit]

    async def get_unfinished_deliveries(self, limit: int = 500) -> list[Delivery]:
        deliveries = [
            d.model_copy(deep=True)
            for d in self._deliveries.values()
            if d.state in UNFINISHED_STATES
        ]
        deliveries.sort(key=lambda d: d.next_retry_at or d.created_at)
        return deliveries[:limit]
