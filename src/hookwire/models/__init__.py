"""Data models for Hookwire.

Subscriber Types (read from the subscription registry):
    - Subscriber: Endpoint, secret, subscribed events and policies
    - FilterConfig / FilterCondition: Declarative payload filters
    - RetryPolicy: Attempt budget and exponential backoff
    - RateLimitConfig, AuthConfig, SubscriberStats

Delivery Types (written to the delivery store):
    - Delivery: Unit of work and audit record
    - DeliveryState: Lifecycle state machine
    - OutboundRequest: Request snapshot reused across retries
    - AttemptResult: Outcome of one HTTP attempt
"""

from .base import generate_id, utcnow
from .delivery import (
    ALLOWED_TRANSITIONS,
    TERMINAL_STATES,
    UNFINISHED_STATES,
    AttemptResult,
    Delivery,
    DeliveryState,
    DeliveryTransition,
    ErrorSnapshot,
    OutboundRequest,
    ResponseSnapshot,
)
from .stats import DeliveryStats, Outcome, SubscriberTestResult
from .subscriber import (
    FILTER_OPERATORS,
    AuthConfig,
    AuthType,
    FilterCondition,
    FilterConfig,
    FilterOperator,
    HealthStatus,
    RateLimitConfig,
    RetryPolicy,
    Subscriber,
    SubscriberStats,
)

__all__ = [
    # Base helpers
    "generate_id",
    "utcnow",
    # Subscriber
    "FILTER_OPERATORS",
    "AuthConfig",
    "AuthType",
    "FilterCondition",
    "FilterConfig",
    "FilterOperator",
    "HealthStatus",
    "RateLimitConfig",
    "RetryPolicy",
    "Subscriber",
    "SubscriberStats",
    # Delivery
    "ALLOWED_TRANSITIONS",
    "TERMINAL_STATES",
    "UNFINISHED_STATES",
    "AttemptResult",
    "Delivery",
    "DeliveryState",
    "DeliveryTransition",
    "ErrorSnapshot",
    "OutboundRequest",
    "ResponseSnapshot",
    # Stats
    "DeliveryStats",
    "Outcome",
    "SubscriberTestResult",
]
