"""Delivery models: the unit of work and the audit record.

A Delivery is one subscriber-specific attempt series for one event
occurrence. Its state only moves along ALLOWED_TRANSITIONS; terminal
deliveries are never mutated again, so re-sending an event always means
creating a new Delivery.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, JsonValue

from hookwire.exceptions import InvalidTransitionError

from .base import generate_id, utcnow


class DeliveryState(str, Enum):
    """Delivery lifecycle states."""

    PENDING = "pending"  # Created, not yet attempted
    IN_FLIGHT = "in_flight"  # HTTP attempt executing
    RETRY_SCHEDULED = "retry_scheduled"  # Failed, waiting for next_retry_at
    DELIVERED = "delivered"  # Terminal success
    EXHAUSTED = "exhausted"  # Terminal failure (attempts used up or cancelled)


ALLOWED_TRANSITIONS: dict[DeliveryState, frozenset[DeliveryState]] = {
    # pending -> exhausted is reachable only through cancel()
    DeliveryState.PENDING: frozenset({DeliveryState.IN_FLIGHT, DeliveryState.EXHAUSTED}),
    DeliveryState.IN_FLIGHT: frozenset(
        {DeliveryState.DELIVERED, DeliveryState.RETRY_SCHEDULED, DeliveryState.EXHAUSTED}
    ),
    DeliveryState.RETRY_SCHEDULED: frozenset({DeliveryState.IN_FLIGHT, DeliveryState.EXHAUSTED}),
    DeliveryState.DELIVERED: frozenset(),
    DeliveryState.EXHAUSTED: frozenset(),
}

TERMINAL_STATES: frozenset[DeliveryState] = frozenset(
    {DeliveryState.DELIVERED, DeliveryState.EXHAUSTED}
)

UNFINISHED_STATES: frozenset[DeliveryState] = frozenset(
    {DeliveryState.PENDING, DeliveryState.IN_FLIGHT, DeliveryState.RETRY_SCHEDULED}
)


class OutboundRequest(BaseModel):
    """Snapshot of the HTTP request sent to a subscriber.

    Captured once at delivery creation and replayed unchanged on every
    retry, so the body and signature are byte-identical across attempts.
    Credentials are not part of the snapshot; they are applied per attempt.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    method: str = Field(default="POST")
    url: str
    headers: dict[str, str] = Field(default_factory=dict)
    body: str = Field(description="UTF-8 JSON body exactly as signed")

    @property
    def body_bytes(self) -> bytes:
        """Body bytes as transmitted."""
        return self.body.encode("utf-8")


class ResponseSnapshot(BaseModel):
    """Response captured from the most recent completed HTTP exchange."""

    model_config = ConfigDict(extra="forbid")

    status_code: int
    headers: dict[str, str] = Field(default_factory=dict)
    body: str | None = None
    latency_ms: float = Field(default=0.0, ge=0.0)


class ErrorSnapshot(BaseModel):
    """Error captured from the most recent failed attempt."""

    model_config = ConfigDict(extra="forbid")

    message: str
    code: str | None = None


class AttemptResult(BaseModel):
    """Outcome of a single HTTP attempt.

    Attributes:
        success: True only for 2xx responses.
        retryable: Whether the failure may be retried under the attempt budget.
        status_code: HTTP status if a response was received.
        response_headers: Response headers if a response was received.
        response_body: Response body (truncated) if a response was received.
        latency_ms: Round-trip time; 0.0 when no response was received.
        error_message: Failure description for non-2xx or transport errors.
        error_code: Machine-readable failure code (e.g. "HTTP_503", "ConnectError").
    """

    model_config = ConfigDict(extra="forbid")

    success: bool
    retryable: bool = False
    status_code: int | None = None
    response_headers: dict[str, str] | None = None
    response_body: str | None = None
    latency_ms: float = Field(default=0.0, ge=0.0)
    error_message: str | None = None
    error_code: str | None = None

    def response_snapshot(self) -> ResponseSnapshot | None:
        """Build a response snapshot if a response was received."""
        if self.status_code is None:
            return None
        return ResponseSnapshot(
            status_code=self.status_code,
            headers=dict(self.response_headers or {}),
            body=self.response_body,
            latency_ms=self.latency_ms,
        )

    def error_snapshot(self) -> ErrorSnapshot | None:
        """Build an error snapshot for failed attempts."""
        if self.success:
            return None
        return ErrorSnapshot(
            message=self.error_message or "Unknown error occurred",
            code=self.error_code,
        )


class DeliveryTransition(BaseModel):
    """One entry of a delivery's audit trail."""

    model_config = ConfigDict(extra="forbid")

    from_state: DeliveryState
    to_state: DeliveryState
    attempt: int = Field(ge=0)
    at: datetime = Field(default_factory=utcnow)


class Delivery(BaseModel):
    """Record of one event delivered to one subscriber.

    Attributes:
        id: Unique identifier for this delivery.
        subscriber_id: Owning subscriber.
        event: Event name.
        payload: Event payload as received from the producer.
        request: Outbound request snapshot reused across retries.
        state: Current lifecycle state.
        attempts: HTTP attempts executed so far.
        max_attempts: Attempt budget copied from the subscriber at creation.
        next_retry_at: When the next attempt is due (retry_scheduled only).
        response: Last captured response.
        error: Last captured error.
        delivered_at: When the delivery succeeded.
        cancelled: Whether the delivery was terminated by cancellation.
        transitions: Audit trail of state changes.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("dlv"))
    subscriber_id: str = Field(description="Owning subscriber")
    event: str = Field(description="Event name")
    payload: JsonValue = Field(default=None, description="Event payload")
    request: OutboundRequest = Field(description="Request snapshot")
    state: DeliveryState = Field(default=DeliveryState.PENDING)
    attempts: int = Field(default=0, ge=0, description="Executed HTTP attempts")
    max_attempts: int = Field(ge=1, frozen=True, description="Attempt budget")
    next_retry_at: datetime | None = None
    response: ResponseSnapshot | None = None
    error: ErrorSnapshot | None = None
    delivered_at: datetime | None = None
    cancelled: bool = False
    transitions: list[DeliveryTransition] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_terminal(self) -> bool:
        """Whether the delivery has reached delivered or exhausted."""
        return self.state in TERMINAL_STATES

    @property
    def attempts_remaining(self) -> int:
        """Attempts left in the budget."""
        return max(0, self.max_attempts - self.attempts)

    def _transition(self, target: DeliveryState) -> None:
        if target not in ALLOWED_TRANSITIONS[self.state]:
            raise InvalidTransitionError(self.id, self.state.value, target.value)
        now = utcnow()
        self.transitions.append(
            DeliveryTransition(
                from_state=self.state,
                to_state=target,
                attempt=self.attempts,
                at=now,
            )
        )
        self.state = target
        self.updated_at = now

    def _capture(self, result: AttemptResult) -> None:
        self.response = result.response_snapshot()
        self.error = result.error_snapshot()

    def begin_attempt(self) -> "Delivery":
        """Move into in_flight and count the attempt about to be sent."""
        if self.attempts >= self.max_attempts:
            raise InvalidTransitionError(self.id, self.state.value, DeliveryState.IN_FLIGHT.value)
        self._transition(DeliveryState.IN_FLIGHT)
        self.attempts += 1
        self.next_retry_at = None
        return self

    def mark_delivered(self, result: AttemptResult) -> "Delivery":
        """Mark delivery as successful."""
        self._transition(DeliveryState.DELIVERED)
        self._capture(result)
        self.delivered_at = self.updated_at
        return self

    def mark_retry_scheduled(self, result: AttemptResult, next_retry_at: datetime) -> "Delivery":
        """Mark delivery for retry at ``next_retry_at``."""
        self._transition(DeliveryState.RETRY_SCHEDULED)
        self._capture(result)
        self.next_retry_at = next_retry_at
        return self

    def mark_exhausted(self, result: AttemptResult) -> "Delivery":
        """Mark delivery as failed with no more attempts."""
        if self.state == DeliveryState.PENDING:
            raise InvalidTransitionError(self.id, self.state.value, DeliveryState.EXHAUSTED.value)
        self._transition(DeliveryState.EXHAUSTED)
        self._capture(result)
        self.next_retry_at = None
        return self

    def mark_interrupted(self, next_retry_at: datetime) -> "Delivery":
        """Reschedule an attempt whose outcome was lost (process restart)."""
        self._transition(DeliveryState.RETRY_SCHEDULED)
        self.next_retry_at = next_retry_at
        self.error = ErrorSnapshot(
            message="Attempt interrupted before completion",
            code="interrupted",
        )
        return self

    def cancel(self, reason: str) -> "Delivery":
        """Terminate a delivery without consuming another attempt."""
        self._transition(DeliveryState.EXHAUSTED)
        self.cancelled = True
        self.next_retry_at = None
        self.error = ErrorSnapshot(message=f"Delivery cancelled: {reason}", code="cancelled")
        return self


__all__ = [
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
]
