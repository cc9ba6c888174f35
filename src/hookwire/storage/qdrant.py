"""Qdrant-backed subscriber registry and delivery store.

Subscribers and deliveries have no semantic-search use, so each record is a
payload-only point with a constant 1-dimensional placeholder vector. Point
IDs are derived deterministically from the record ID, which makes every
save an upsert.
"""

from __future__ import annotations

import hashlib
from datetime import datetime
from typing import Any, TypeVar

from qdrant_client import AsyncQdrantClient, models

from hookwire.config import Settings
from hookwire.config import settings as default_settings
from hookwire.models import UNFINISHED_STATES, Delivery, HealthStatus, Subscriber

from .base import DeliveryStore, SubscriberRegistry
from .retry import qdrant_retry

RecordT = TypeVar("RecordT", Subscriber, Delivery)

COLLECTION_NAMES = {
    "subscribers": "subscribers",
    "deliveries": "deliveries",
}

PLACEHOLDER_VECTOR = [1.0]

# Keyword payload indexes per collection
_KEYWORD_INDEXES = {
    "subscribers": ("events", "status"),
    "deliveries": ("subscriber_id", "state"),
}


class QdrantStorage(SubscriberRegistry, DeliveryStore):
    """Subscriber registry and delivery store on Qdrant.

    Example:
        ```python
        async with QdrantStorage() as storage:
            dispatcher = WebhookDispatcher(registry=storage, store=storage)
        ```
    """

    def __init__(
        self,
        url: str | None = None,
        api_key: str | None = None,
        prefix: str | None = None,
        settings: Settings | None = None,
    ) -> None:
        """Initialize storage client.

        Args:
            url: Qdrant server URL. Defaults to settings.qdrant_url.
            api_key: Qdrant API key. Defaults to settings.qdrant_api_key.
            prefix: Collection name prefix. Defaults to settings.collection_prefix.
            settings: Settings to read defaults from.
        """
        cfg = settings or default_settings
        self._url = url or cfg.qdrant_url
        self._api_key = api_key or cfg.qdrant_api_key
        self._prefix = prefix or cfg.collection_prefix
        self._client: AsyncQdrantClient | None = None

    @property
    def initialized(self) -> bool:
        """Whether a client is connected."""
        return self._client is not None

    @property
    def client(self) -> AsyncQdrantClient:
        """Get the Qdrant client, raising if not initialized."""
        if self._client is None:
            raise RuntimeError("Storage not initialized. Call initialize() first.")
        return self._client

    async def initialize(self, client: AsyncQdrantClient | None = None) -> None:
        """Connect (or adopt ``client``) and ensure collections exist."""
        self._client = client or AsyncQdrantClient(url=self._url, api_key=self._api_key)
        await self._ensure_collections()

    async def close(self) -> None:
        """Close the storage client connection."""
        if self._client is not None:
            await self._client.close()
            self._client = None

    async def __aenter__(self) -> QdrantStorage:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _collection_name(self, kind: str) -> str:
        """Get full collection name with prefix."""
        return f"{self._prefix}_{COLLECTION_NAMES[kind]}"

    @staticmethod
    def _key_to_point_id(key: str) -> str:
        """Convert a record ID to a valid Qdrant point ID.

        Qdrant requires point IDs to be UUIDs or unsigned integers.
        We hash the key to create a deterministic UUID-format string.
        """
        h = hashlib.sha256(key.encode()).hexdigest()[:32]
        return f"{h[:8]}-{h[8:12]}-{h[12:16]}-{h[16:20]}-{h[20:32]}"

    async def _ensure_collections(self) -> None:
        collections = await self.client.get_collections()
        existing = {c.name for c in collections.collections}

        for kind in COLLECTION_NAMES:
            name = self._collection_name(kind)
            if name in existing:
                continue
            await self.client.create_collection(
                collection_name=name,
                vectors_config=models.VectorParams(
                    size=len(PLACEHOLDER_VECTOR),
                    distance=models.Distance.DOT,
                ),
            )
            for field_name in _KEYWORD_INDEXES[kind]:
                await self.client.create_payload_index(
                    collection_name=name,
                    field_name=field_name,
                    field_schema=models.PayloadSchemaType.KEYWORD,
                )

    @qdrant_retry
    async def _upsert(self, kind: str, record_id: str, payload: dict[str, Any]) -> None:
        await self.client.upsert(
            collection_name=self._collection_name(kind),
            points=[
                models.PointStruct(
                    id=self._key_to_point_id(record_id),
                    vector=PLACEHOLDER_VECTOR,
                    payload=payload,
                )
            ],
        )

    @qdrant_retry
    async def _retrieve(self, kind: str, record_id: str) -> dict[str, Any] | None:
        results = await self.client.retrieve(
            collection_name=self._collection_name(kind),
            ids=[self._key_to_point_id(record_id)],
            with_payload=True,
        )
        if not results:
            return None
        return results[0].payload

    @qdrant_retry
    async def _scroll(
        self, kind: str, scroll_filter: models.Filter, limit: int
    ) -> list[dict[str, Any]]:
        results, _ = await self.client.scroll(
            collection_name=self._collection_name(kind),
            scroll_filter=scroll_filter,
            limit=limit,
            with_payload=True,
        )
        return [r.payload for r in results if r.payload is not None]

    @staticmethod
    def _payload_to_record(payload: dict[str, Any], record_class: type[RecordT]) -> RecordT:
        data = dict(payload)
        data.pop("created_ts", None)
        data.pop("next_retry_ts", None)
        return record_class.model_validate(data)

    # Subscriber registry

    async def save_subscriber(self, subscriber: Subscriber) -> str:
        await self._upsert("subscribers", subscriber.id, subscriber.model_dump(mode="json"))
        return subscriber.id

    async def get_subscriber(self, subscriber_id: str) -> Subscriber | None:
        payload = await self._retrieve("subscribers", subscriber_id)
        if payload is None:
            return None
        return self._payload_to_record(payload, Subscriber)

    async def get_subscribers_for_event(self, event: str) -> list[Subscriber]:
        scroll_filter = models.Filter(
            must=[
                models.FieldCondition(key="events", match=models.MatchValue(value=event)),
                models.FieldCondition(key="is_active", match=models.MatchValue(value=True)),
                models.FieldCondition(
                    key="status",
                    match=models.MatchAny(
                        any=[HealthStatus.ACTIVE.value, HealthStatus.TESTING.value]
                    ),
                ),
            ]
        )
        payloads = await self._scroll("subscribers", scroll_filter, limit=10_000)
        subscribers = [self._payload_to_record(p, Subscriber) for p in payloads]
        return [s for s in subscribers if s.subscribes_to(event)]

    # Delivery store

    async def save_delivery(self, delivery: Delivery) -> str:
        payload = delivery.model_dump(mode="json")
        # Numeric copies for range filtering and ordering
        payload["created_ts"] = delivery.created_at.timestamp()
        payload["next_retry_ts"] = (
            delivery.next_retry_at.timestamp() if delivery.next_retry_at else None
        )
        await self._upsert("deliveries", delivery.id, payload)
        return delivery.id

    async def get_delivery(self, delivery_id: str) -> Delivery | None:
        payload = await self._retrieve("deliveries", delivery_id)
        if payload is None:
            return None
        return self._payload_to_record(payload, Delivery)

    async def list_deliveries(
        self,
        subscriber_id: str,
        since: datetime | None = None,
        limit: int = 10_000,
    ) -> list[Delivery]:
        conditions: list[models.Condition] = [
            models.FieldCondition(
                key="subscriber_id",
                match=models.MatchValue(value=subscriber_id),
            )
        ]
        if since is not None:
            conditions.append(
                models.FieldCondition(
                    key="created_ts",
                    range=models.Range(gte=since.timestamp()),
                )
            )

        payloads = await self._scroll("deliveries", models.Filter(must=conditions), limit=limit)
        deliveries = [self._payload_to_record(p, Delivery) for p in payloads]
        deliveries.sort(key=lambda d: d.created_at, reverse=True)
        return deliveries

    async def get_unfinished_deliveries(self, limit: int = 500) -> list[Delivery]:
        scroll_filter = models.Filter(
            must=[
                models.FieldCondition(
                    key="state",
                    match=models.MatchAny(any=[s.value for s in UNFINISHED_STATES]),
                )
            ]
        )
        payloads = await self._scroll("deliveries", scroll_filter, limit=limit)
        deliveries = [self._payload_to_record(p, Delivery) for p in payloads]
        deliveries.sort(key=lambda d: d.next_retry_at or d.created_at)
        return deliveries
