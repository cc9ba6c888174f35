"""Subscriber models consumed from the subscription registry.

A subscriber is a registered external endpoint. Hookwire reads subscriber
records but never creates or deletes them; the only fields it writes back
are the rolling statistics and the health status.
"""

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, JsonValue

from .base import generate_id, utcnow

AuthType = Literal["none", "basic", "bearer", "custom"]

FilterOperator = Literal["equals", "contains", "starts_with", "ends_with", "regex"]

# Operators understood by the filter evaluator
FILTER_OPERATORS: tuple[str, ...] = ("equals", "contains", "starts_with", "ends_with", "regex")


class HealthStatus(str, Enum):
    """Subscriber health derived from recent delivery outcomes."""

    ACTIVE = "active"
    TESTING = "testing"
    ERROR = "error"


class FilterCondition(BaseModel):
    """A single declarative match rule against the event payload.

    Attributes:
        field: Dot-path into the payload (e.g. "order.status").
        operator: One of equals, contains, starts_with, ends_with, regex.
        value: Operand compared against the resolved field value.
    """

    model_config = ConfigDict(extra="forbid")

    field: str = Field(min_length=1, description="Dot-path into the payload")
    # Kept as a plain string so an unknown operator fails closed at evaluation
    # time instead of rejecting the whole subscriber record
    operator: str = Field(description="Comparison operator")
    value: JsonValue = Field(default=None, description="Operand")


class FilterConfig(BaseModel):
    """Ordered filter conditions combined with logical AND."""

    model_config = ConfigDict(extra="forbid")

    enabled: bool = Field(default=False, description="Whether filtering applies")
    conditions: list[FilterCondition] = Field(
        default_factory=list,
        description="Conditions evaluated in order, all must pass",
    )


class RetryPolicy(BaseModel):
    """Retry and backoff settings for deliveries to one subscriber.

    Attributes:
        max_attempts: Total HTTP attempts allowed per delivery.
        base_delay_ms: Delay before the first retry.
        backoff_multiplier: Growth factor applied per failed attempt.
        max_delay_ms: Upper bound for any single retry delay.
    """

    model_config = ConfigDict(extra="forbid")

    max_attempts: int = Field(default=3, ge=1, le=50, description="Total attempts per delivery")
    base_delay_ms: int = Field(default=1000, ge=0, description="Initial retry delay")
    backoff_multiplier: float = Field(default=2.0, ge=1.0, le=10.0, description="Backoff factor")
    max_delay_ms: int = Field(default=30_000, ge=0, description="Retry delay cap")


class RateLimitConfig(BaseModel):
    """Per-subscriber delivery budget."""

    model_config = ConfigDict(extra="forbid")

    enabled: bool = Field(default=False, description="Whether rate limiting applies")
    max_per_window: int | None = Field(
        default=None,
        ge=1,
        description="Deliveries allowed per window (settings default if unset)",
    )


class AuthConfig(BaseModel):
    """Credentials attached to outbound requests.

    Which fields are read depends on the subscriber's ``auth_type``.
    """

    model_config = ConfigDict(extra="forbid")

    username: str | None = Field(default=None, description="Basic auth username")
    password: str | None = Field(default=None, description="Basic auth password")
    token: str | None = Field(default=None, description="Bearer token")
    custom_headers: dict[str, str] = Field(
        default_factory=dict,
        description="Headers merged for custom auth",
    )


class SubscriberStats(BaseModel):
    """Rolling delivery counters maintained by the statistics aggregator."""

    model_config = ConfigDict(extra="forbid")

    total_deliveries: int = Field(default=0, ge=0)
    successful_deliveries: int = Field(default=0, ge=0)
    failed_deliveries: int = Field(default=0, ge=0)
    average_response_time_ms: float = Field(
        default=0.0,
        ge=0.0,
        description="Running mean latency over successful deliveries only",
    )
    last_delivery_at: datetime | None = None
    last_success_at: datetime | None = None
    last_failure_at: datetime | None = None


class Subscriber(BaseModel):
    """A registered webhook endpoint.

    Attributes:
        id: Unique identifier for this subscriber.
        url: Endpoint receiving POST deliveries.
        secret: Shared secret for HMAC-SHA256 signatures (optional).
        events: Event names this subscriber wants.
        is_active: Registry-level on/off switch.
        status: Health status (active, testing, error).
        filters: Payload filter configuration.
        retry: Retry policy copied onto each new delivery.
        rate_limit: Per-subscriber rate-limit configuration.
        auth_type: none, basic, bearer or custom.
        auth: Credentials for the chosen auth type.
        headers: Extra static headers sent with every delivery.
        stats: Rolling delivery statistics.
        last_error: Most recent terminal failure message.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("sub"))
    url: str = Field(min_length=1, description="Endpoint receiving deliveries")
    secret: str | None = Field(default=None, description="Signing secret")
    events: list[str] = Field(default_factory=list, description="Subscribed event names")
    is_active: bool = Field(default=True, description="Whether subscriber is enabled")
    status: HealthStatus = Field(default=HealthStatus.ACTIVE, description="Health status")
    filters: FilterConfig = Field(default_factory=FilterConfig)
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    # Unknown values from the registry are tolerated and mean "no credentials"
    auth_type: str = Field(default="none", description="Authentication mode")
    auth: AuthConfig = Field(default_factory=AuthConfig)
    headers: dict[str, str] = Field(default_factory=dict, description="Static headers")
    stats: SubscriberStats = Field(default_factory=SubscriberStats)
    last_error: str | None = Field(default=None, description="Last terminal failure")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_healthy_for_dispatch(self) -> bool:
        """Active and in a health status that still receives events."""
        return self.is_active and self.status in (HealthStatus.ACTIVE, HealthStatus.TESTING)

    def subscribes_to(self, event: str) -> bool:
        """Check if this subscriber should be considered for an event."""
        return self.is_healthy_for_dispatch and event in self.events


__all__ = [
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
]
