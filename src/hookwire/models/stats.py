"""Result models for the statistics and preview paths."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, JsonValue

Outcome = Literal["success", "failure"]


class DeliveryStats(BaseModel):
    """Delivery statistics for one subscriber over a time window.

    Attributes:
        total: Deliveries created in the window.
        successful: Deliveries in the delivered state.
        failed: Deliveries in the exhausted state.
        pending: Deliveries not yet terminal.
        average_response_time: Mean latency (ms) of successful deliveries.
        success_rate: successful / total as a percentage.
    """

    model_config = ConfigDict(extra="forbid")

    subscriber_id: str
    window_days: int = Field(ge=1)
    total: int = Field(default=0, ge=0)
    successful: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)
    pending: int = Field(default=0, ge=0)
    average_response_time: float = Field(default=0.0, ge=0.0)
    success_rate: float = Field(default=0.0, ge=0.0, le=100.0)


class SubscriberTestResult(BaseModel):
    """Outcome of a one-off preview delivery.

    No delivery record is created for a preview and subscriber statistics
    are untouched.
    """

    model_config = ConfigDict(extra="forbid")

    success: bool
    status_code: int | None = None
    latency_ms: float = Field(default=0.0, ge=0.0)
    response: JsonValue = None
    error: str | None = None


__all__ = ["DeliveryStats", "Outcome", "SubscriberTestResult"]
