"""Single-attempt HTTP execution and outcome classification.

Classification:
- 2xx: success.
- 5xx and transport failures (connect errors, timeouts, DNS): retryable.
- Any other status (4xx included): failure, retryable unless
  ``Settings.retry_client_errors`` is disabled.
- Anything unexpected: terminal failure, logged with traceback.

The executor never raises for delivery problems; every outcome comes back as
an AttemptResult.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

import httpx

from hookwire.config import Settings
from hookwire.config import settings as default_settings
from hookwire.logging import get_logger
from hookwire.models import AttemptResult

if TYPE_CHECKING:
    from hookwire.models import Delivery, OutboundRequest, Subscriber

    from .request import RequestBuilder

logger = get_logger(__name__)


class DeliveryExecutor:
    """Performs one HTTP attempt for a delivery.

    Example:
        ```python
        async with httpx.AsyncClient() as client:
            executor = DeliveryExecutor(client, RequestBuilder())
            result = await executor.execute(delivery, subscriber)
        ```
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        builder: RequestBuilder,
        settings: Settings | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            client: Shared HTTP client (connection pooling is its concern).
            builder: Request builder used to resolve credentials.
            settings: Settings for timeout and classification.
        """
        self._client = client
        self._builder = builder
        self._settings = settings or default_settings
        self._timeout = self._settings.request_timeout_seconds

    async def execute(self, delivery: Delivery, subscriber: Subscriber) -> AttemptResult:
        """Send the delivery's request snapshot once."""
        return await self.send(delivery.request, subscriber)

    async def send(self, request: OutboundRequest, subscriber: Subscriber) -> AttemptResult:
        """Send a request snapshot once and classify the outcome.

        Args:
            request: Snapshot to send; body bytes are sent unchanged.
            subscriber: Subscriber whose credentials apply.

        Returns:
            AttemptResult describing the outcome.
        """
        headers, auth = self._builder.prepare_headers(request, subscriber)
        start = time.perf_counter()

        try:
            response = await self._client.request(
                request.method,
                request.url,
                content=request.body_bytes,
                headers=headers,
                timeout=self._timeout,
                auth=auth,
            )
        except httpx.TimeoutException as e:
            return AttemptResult(
                success=False,
                retryable=True,
                error_message=f"Request timeout: {e}" if str(e) else "Request timeout",
                error_code=type(e).__name__,
            )
        except httpx.RequestError as e:
            return AttemptResult(
                success=False,
                retryable=True,
                error_message=str(e) or type(e).__name__,
                error_code=type(e).__name__,
            )
        except httpx.InvalidURL as e:
            return AttemptResult(
                success=False,
                retryable=False,
                error_message=f"Invalid subscriber URL: {e}",
                error_code="InvalidURL",
            )
        except Exception as e:
            logger.exception("Webhook delivery error", subscriber_id=subscriber.id)
            return AttemptResult(
                success=False,
                retryable=False,
                error_message=f"Unexpected error: {e}",
                error_code="unexpected_error",
            )

        latency_ms = (time.perf_counter() - start) * 1000
        return self._classify(response, latency_ms)

    def _classify(self, response: httpx.Response, latency_ms: float) -> AttemptResult:
        status = response.status_code
        limit = self._settings.response_body_limit
        text = response.text
        body = text[:limit] if text else None
        headers = dict(response.headers.items())

        if 200 <= status < 300:
            return AttemptResult(
                success=True,
                status_code=status,
                response_headers=headers,
                response_body=body,
                latency_ms=latency_ms,
            )

        retryable = status >= 500 or self._settings.retry_client_errors
        return AttemptResult(
            success=False,
            retryable=retryable,
            status_code=status,
            response_headers=headers,
            response_body=body,
            latency_ms=latency_ms,
            error_message=f"HTTP {status}: {text[:200]}" if text else f"HTTP {status}",
            error_code=f"HTTP_{status}",
        )
