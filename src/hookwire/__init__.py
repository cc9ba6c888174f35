"""Hookwire: reliable outbound webhooks.

Delivers application events to subscriber endpoints over HTTP with HMAC
signatures, payload filters, per-subscriber rate limits, exponential-backoff
retries and rolling health statistics.

Quick Start:
    from hookwire import WebhookDispatcher
    from hookwire.storage import InMemoryDeliveryStore, InMemorySubscriberRegistry

    async with WebhookDispatcher(registry, store) as dispatcher:
        delivery_ids = await dispatcher.dispatch(
            "order.created",
            {"order": {"id": 42, "status": "paid"}},
        )

Delivery States:
    - pending: Created, not yet attempted
    - in_flight: HTTP attempt executing
    - retry_scheduled: Failed, waiting for its next attempt
    - delivered: Terminal success
    - exhausted: Terminal failure
"""

__version__ = "0.1.0"

# Configuration
from .config import Settings, settings

# Exceptions
from .exceptions import (
    ConfigurationError,
    DispatchError,
    HookwireError,
    InvalidTransitionError,
    NotFoundError,
    RateLimitError,
    RegistryError,
    StorageError,
    ValidationError,
)

# Logging
from .logging import (
    bind_context,
    clear_context,
    configure_logging,
    delivery_context,
    get_logger,
    unbind_context,
)

# Models
from .models import (
    AttemptResult,
    Delivery,
    DeliveryState,
    DeliveryStats,
    FilterCondition,
    FilterConfig,
    HealthStatus,
    RetryPolicy,
    Subscriber,
    SubscriberTestResult,
)

# Delivery
from .webhooks import WebhookDispatcher, sign, verify_signature

__all__ = [
    "__version__",
    # Configuration
    "Settings",
    "settings",
    # Exceptions
    "ConfigurationError",
    "DispatchError",
    "HookwireError",
    "InvalidTransitionError",
    "NotFoundError",
    "RateLimitError",
    "RegistryError",
    "StorageError",
    "ValidationError",
    # Logging
    "bind_context",
    "clear_context",
    "configure_logging",
    "delivery_context",
    "get_logger",
    "unbind_context",
    # Models
    "AttemptResult",
    "Delivery",
    "DeliveryState",
    "DeliveryStats",
    "FilterCondition",
    "FilterConfig",
    "HealthStatus",
    "RetryPolicy",
    "Subscriber",
    "SubscriberTestResult",
    # Delivery
    "WebhookDispatcher",
    "sign",
    "verify_signature",
]
