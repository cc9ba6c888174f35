"""Webhook delivery pipeline.

Components:
    - WebhookDispatcher: Fan-out entry point
    - RetryScheduler: State machine progression and retry timing
    - DeliveryExecutor: One HTTP attempt with outcome classification
    - RequestBuilder: Body serialization, signing and headers
    - StatisticsAggregator: Subscriber health and rolling counters
    - InMemoryRateLimiter: Sliding-window admission control
"""

from .dispatcher import WebhookDispatcher
from .executor import DeliveryExecutor
from .filters import evaluate_condition, matches, matches_filters, resolve_path
from .ratelimit import InMemoryRateLimiter, RateLimiter, RateLimitInfo
from .request import RequestBuilder, serialize_payload
from .scheduler import RetryScheduler, compute_retry_delay
from .signing import sign, verify_signature
from .stats import StatisticsAggregator, apply_outcome

__all__ = [
    "DeliveryExecutor",
    "InMemoryRateLimiter",
    "RateLimitInfo",
    "RateLimiter",
    "RequestBuilder",
    "RetryScheduler",
    "StatisticsAggregator",
    "WebhookDispatcher",
    "apply_outcome",
    "compute_retry_delay",
    "evaluate_condition",
    "matches",
    "matches_filters",
    "resolve_path",
    "serialize_payload",
    "sign",
    "verify_signature",
]
