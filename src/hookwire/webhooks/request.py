"""Outbound request construction.

The payload is serialized exactly once per delivery; the resulting body and
its signature are frozen in an OutboundRequest snapshot that every retry
replays. Credentials are resolved separately at send time so they never
end up in the persisted audit record.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import httpx

from hookwire.config import Settings
from hookwire.config import settings as default_settings
from hookwire.exceptions import ConfigurationError, ValidationError
from hookwire.logging import get_logger
from hookwire.models import OutboundRequest

from .signing import sign

if TYPE_CHECKING:
    from hookwire.models import Subscriber

logger = get_logger(__name__)


def serialize_payload(payload: Any) -> str:
    """Serialize a payload to compact UTF-8 JSON.

    Args:
        payload: Any JSON-compatible value.

    Returns:
        JSON text. Key order follows the input mapping.

    Raises:
        ValidationError: If the payload is not JSON-serializable.
    """
    try:
        return json.dumps(payload, separators=(",", ":"), ensure_ascii=False, allow_nan=False)
    except (TypeError, ValueError) as e:
        raise ValidationError("payload", f"not JSON-serializable: {e}") from e


class RequestBuilder:
    """Builds signed outbound requests for subscribers.

    Example:
        ```python
        builder = RequestBuilder()
        request = builder.build(subscriber, "order.created", {"id": 1})
        headers, auth = builder.credentials(subscriber)
        ```
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or default_settings

    def build(
        self,
        subscriber: Subscriber,
        event: str,
        payload: Any = None,
        *,
        body: str | None = None,
    ) -> OutboundRequest:
        """Build the request snapshot for one subscriber.

        Args:
            subscriber: Target subscriber.
            event: Event name for the event header.
            payload: Payload to serialize when ``body`` is not given.
            body: Pre-serialized body, used as-is.

        Returns:
            Frozen OutboundRequest with signature header.

        Raises:
            ConfigurationError: If signatures are required and the
                subscriber has no secret.
            ValidationError: If the payload cannot be serialized.
        """
        if self._settings.require_signatures and not subscriber.secret:
            raise ConfigurationError(f"Subscriber {subscriber.id} has no signing secret")

        if body is None:
            body = serialize_payload(payload)

        signature = sign(body.encode("utf-8"), subscriber.secret)

        headers = {
            "Content-Type": "application/json",
            self._settings.event_header: event,
            self._settings.signature_header: signature,
            "User-Agent": self._settings.user_agent,
        }
        self._merge_headers(headers, subscriber.headers, subscriber.id)

        return OutboundRequest(
            method="POST",
            url=subscriber.url,
            headers=headers,
            body=body,
        )

    def credentials(
        self, subscriber: Subscriber
    ) -> tuple[dict[str, str], httpx.BasicAuth | None]:
        """Resolve per-attempt auth headers and transport credentials.

        Exactly one auth mode applies. ``none`` or an unrecognized auth type
        attaches nothing.

        Returns:
            Tuple of (extra headers, basic auth or None).
        """
        auth = subscriber.auth
        auth_type = subscriber.auth_type

        if auth_type == "basic" and auth.username:
            return {}, httpx.BasicAuth(auth.username, auth.password or "")
        if auth_type == "bearer" and auth.token:
            return {"Authorization": f"Bearer {auth.token}"}, None
        if auth_type == "custom" and auth.custom_headers:
            headers: dict[str, str] = {}
            self._merge_headers(headers, auth.custom_headers, subscriber.id)
            return headers, None
        return {}, None

    def prepare_headers(
        self, request: OutboundRequest, subscriber: Subscriber
    ) -> tuple[dict[str, str], httpx.BasicAuth | None]:
        """Combine the snapshot headers with the subscriber's credentials."""
        auth_headers, basic_auth = self.credentials(subscriber)
        headers = dict(request.headers)
        self._merge_headers(headers, auth_headers, subscriber.id)
        return headers, basic_auth

    def _merge_headers(
        self, target: dict[str, str], extra: dict[str, str], subscriber_id: str
    ) -> None:
        protected = self._settings.signature_header.lower()
        for name, value in extra.items():
            lowered = name.lower()
            if lowered == protected:
                logger.warning(
                    "Ignoring header that would override the signature",
                    subscriber_id=subscriber_id,
                    header=name,
                )
                continue
            for existing in [k for k in target if k.lower() == lowered]:
                del target[existing]
            target[name] = value
