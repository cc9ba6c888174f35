"""Storage contracts for subscribers and deliveries.

The subscription registry and the delivery store are external
collaborators. Hookwire only depends on these two interfaces.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from hookwire.models import Delivery, Subscriber


class SubscriberRegistry(ABC):
    """Read access to subscribers plus statistics write-back."""

    @abstractmethod
    async def get_subscriber(self, subscriber_id: str) -> Subscriber | None:
        """Get a subscriber by ID, or None if unknown."""
        ...

    @abstractmethod
    async def get_subscribers_for_event(self, event: str) -> list[Subscriber]:
        """Get active subscribers whose event set contains ``event``."""
        ...

    @abstractmethod
    async def save_subscriber(self, subscriber: Subscriber) -> str:
        """Persist a subscriber (statistics and health updates)."""
        ...


class DeliveryStore(ABC):
    """Persistence for delivery records, upserted on every transition."""

    @abstractmethod
    async def save_delivery(self, delivery: Delivery) -> str:
        """Insert or replace a delivery record.

        Returns:
            The delivery ID.
        """
        ...

    @abstractmethod
    async def get_delivery(self, delivery_id: str) -> Delivery | None:
        """Get a delivery by ID, or None if unknown."""
        ...

    @abstractmethod
    async def list_deliveries(
        self,
        subscriber_id: str,
        since: datetime | None = None,
        limit: int = 10_000,
    ) -> list[Delivery]:
        """List deliveries for a subscriber, newest first.

        Args:
            subscriber_id: Owning subscriber.
            since: Only deliveries created at or after this time.
            limit: Maximum records to return.
        """
        ...

    @abstractmethod
    async def get_unfinished_deliveries(self, limit: int = 500) -> list[Delivery]:
        """Get pending, in-flight and retry-scheduled deliveries.

        Ordered by ``next_retry_at`` (falling back to ``created_at``) so
        the recovery sweep processes the most overdue first.
        """
        ...
