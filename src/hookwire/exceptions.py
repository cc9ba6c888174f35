"""Hookwire exception hierarchy.

Errors tied to a single delivery (bad responses, timeouts, a misconfigured
subscriber) are recorded on the delivery and never raised to the producer.
The exceptions here cover everything else: bad caller input, unknown
resources, forbidden state moves and failures of the dispatcher's own
dependencies.
"""

from __future__ import annotations


class HookwireError(Exception):
    """Base exception for all Hookwire errors.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code.
    """

    code: str = "hookwire_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def details(self) -> dict[str, object]:
        """Structured fields beyond the message. Empty for the base class."""
        return {}

    def to_dict(self) -> dict[str, object]:
        """Serialize as ``{"error": {"code", ...details, "message"}}``."""
        return {"error": {"code": self.code, **self.details(), "message": self.message}}


class ValidationError(HookwireError):
    """Caller input was rejected, e.g. a payload that is not JSON-serializable."""

    code: str = "validation_error"

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(f"{field}: {message}")

    def details(self) -> dict[str, object]:
        return {"field": self.field}


class NotFoundError(HookwireError):
    """A subscriber or delivery does not exist."""

    code: str = "not_found"

    def __init__(self, resource_type: str, resource_id: str) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{resource_type} not found: {resource_id}")

    def details(self) -> dict[str, object]:
        return {"resource_type": self.resource_type, "resource_id": self.resource_id}


class ConfigurationError(HookwireError):
    """A subscriber cannot be delivered to as configured.

    The dispatcher skips the affected subscriber and continues fan-out.
    """

    code: str = "configuration_error"


class RateLimitError(HookwireError):
    """A subscriber's sliding window is full.

    Attributes:
        retry_after: Seconds until the window admits another delivery.
    """

    code: str = "rate_limit_exceeded"

    def __init__(self, retry_after: int) -> None:
        self.retry_after = retry_after
        super().__init__(f"Rate limit exceeded. Retry after {retry_after}s")

    def details(self) -> dict[str, object]:
        return {"retry_after": self.retry_after}


class InvalidTransitionError(HookwireError):
    """A delivery was asked to make a state move its lifecycle forbids."""

    code: str = "invalid_transition"

    def __init__(self, delivery_id: str, from_state: str, to_state: str) -> None:
        self.delivery_id = delivery_id
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Delivery {delivery_id} cannot move from {from_state} to {to_state}")

    def details(self) -> dict[str, object]:
        return {
            "delivery_id": self.delivery_id,
            "from_state": self.from_state,
            "to_state": self.to_state,
        }


class DispatchError(HookwireError):
    """An event could not be handed off to its subscribers.

    Raised from ``WebhookDispatcher.dispatch`` only. Deliveries created
    before the failure are already persisted and continue in the background.
    """

    code: str = "dispatch_error"


class StorageError(DispatchError):
    """A delivery record could not be persisted."""

    code: str = "storage_error"


class RegistryError(DispatchError):
    """Subscribers for an event could not be loaded."""

    code: str = "registry_error"
