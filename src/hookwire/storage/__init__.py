"""Storage layer for Hookwire.

Provides the SubscriberRegistry and DeliveryStore contracts together with
in-memory and Qdrant-backed implementations.

Example:
    ```python
    from hookwire.storage import InMemoryDeliveryStore, InMemorySubscriberRegistry

    registry = InMemorySubscriberRegistry([subscriber])
    store = InMemoryDeliveryStore()
    ```
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from hookwire.logging import get_logger

from .base import DeliveryStore, SubscriberRegistry
from .memory import InMemoryDeliveryStore, InMemorySubscriberRegistry
from .qdrant import QdrantStorage

if TYPE_CHECKING:
    from hookwire.config import Settings

logger = get_logger(__name__)


def get_storage(settings: Settings | None = None) -> tuple[SubscriberRegistry, DeliveryStore]:
    """Create the registry and store selected by ``settings.storage_backend``.

    The Qdrant backend returns one QdrantStorage for both roles; it must be
    initialized before use.

    Args:
        settings: Optional settings. Uses the global settings if None.

    Returns:
        Tuple of (subscriber registry, delivery store).

    Raises:
        ValueError: If the storage backend is unknown.

    Example:
        ```python
        from hookwire.config import Settings

        registry, store = get_storage(Settings(storage_backend="qdrant"))
        ```
    """
    if settings is None:
        from hookwire.config import settings as default_settings

        settings = default_settings

    backend = settings.storage_backend.lower()

    if backend == "memory":
        logger.info("Using in-memory storage (no durability)")
        return InMemorySubscriberRegistry(), InMemoryDeliveryStore()
    if backend == "qdrant":
        logger.info("Using Qdrant storage", url=settings.qdrant_url)
        storage = QdrantStorage(settings=settings)
        return storage, storage
    raise ValueError(f"Unknown storage backend: {backend}. Use 'memory' or 'qdrant'.")


__all__ = [
    "DeliveryStore",
    "InMemoryDeliveryStore",
    "InMemorySubscriberRegistry",
    "QdrantStorage",
    "SubscriberRegistry",
    "get_storage",
]
