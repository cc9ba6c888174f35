"""Tests for single-attempt HTTP execution and outcome classification."""

import httpx
import pytest
from helpers import ScriptedEndpoint, make_client

from hookwire.config import Settings
from hookwire.models import AuthConfig, Delivery
from hookwire.webhooks.executor import DeliveryExecutor
from hookwire.webhooks.request import RequestBuilder


def build_delivery(subscriber, settings, payload=None) -> Delivery:
    request = RequestBuilder(settings).build(subscriber, "order.created", payload or {"id": 7})
    return Delivery(
        subscriber_id=subscriber.id,
        event="order.created",
        payload=payload or {"id": 7},
        request=request,
        max_attempts=subscriber.retry.max_attempts,
    )


async def execute(endpoint, subscriber, settings):
    builder = RequestBuilder(settings)
    async with make_client(endpoint) as client:
        executor = DeliveryExecutor(client, builder, settings)
        return await executor.execute(build_delivery(subscriber, settings), subscriber)


class TestClassification:
    """Tests for mapping HTTP outcomes to attempt results."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [200, 201, 204, 299])
    async def test_2xx_is_success(self, subscriber, test_settings, status):
        """Any 2xx response should be a success."""
        result = await execute(ScriptedEndpoint(status), subscriber, test_settings)
        assert result.success
        assert result.status_code == status
        assert result.error_message is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [500, 502, 503])
    async def test_5xx_is_retryable(self, subscriber, test_settings, status):
        """Server errors should be retryable failures."""
        result = await execute(ScriptedEndpoint(status), subscriber, test_settings)
        assert not result.success
        assert result.retryable
        assert result.error_code == f"HTTP_{status}"

    @pytest.mark.asyncio
    async def test_4xx_retryable_by_default(self, subscriber, test_settings):
        """Client errors should be retried unless configured otherwise."""
        result = await execute(ScriptedEndpoint(404), subscriber, test_settings)
        assert not result.success
        assert result.retryable
        assert result.error_message.startswith("HTTP 404")

    @pytest.mark.asyncio
    async def test_4xx_terminal_when_disabled(self, subscriber):
        """Client errors should be terminal with retry_client_errors off."""
        settings = Settings(_env_file=None, retry_client_errors=False)
        result = await execute(ScriptedEndpoint(410), subscriber, settings)
        assert not result.success
        assert not result.retryable

    @pytest.mark.asyncio
    async def test_3xx_is_failure(self, subscriber, test_settings):
        """Redirects are not followed and count as failures."""
        response = httpx.Response(302, headers={"Location": "https://elsewhere.example.com"})
        result = await execute(ScriptedEndpoint(response), subscriber, test_settings)
        assert not result.success
        assert result.status_code == 302

    @pytest.mark.asyncio
    async def test_connect_error_is_retryable(self, subscriber, test_settings):
        """Connection failures should be retryable with no status."""
        endpoint = ScriptedEndpoint(httpx.ConnectError("Connection refused"))
        result = await execute(endpoint, subscriber, test_settings)
        assert not result.success
        assert result.retryable
        assert result.status_code is None
        assert result.latency_ms == 0.0
        assert result.error_code == "ConnectError"
        assert "Connection refused" in result.error_message

    @pytest.mark.asyncio
    async def test_timeout_is_retryable(self, subscriber, test_settings):
        """Timeouts should be retryable."""
        endpoint = ScriptedEndpoint(httpx.ReadTimeout("Read timed out"))
        result = await execute(endpoint, subscriber, test_settings)
        assert not result.success
        assert result.retryable
        assert result.error_code == "ReadTimeout"
        assert result.error_message.startswith("Request timeout")

    @pytest.mark.asyncio
    async def test_unexpected_error_is_terminal(self, subscriber, test_settings):
        """Unexpected exceptions should become terminal failures."""
        endpoint = ScriptedEndpoint(RuntimeError("boom"))
        result = await execute(endpoint, subscriber, test_settings)
        assert not result.success
        assert not result.retryable
        assert result.error_code == "unexpected_error"

    @pytest.mark.asyncio
    async def test_response_body_truncated(self, subscriber):
        """Response bodies should be truncated to the configured limit."""
        settings = Settings(_env_file=None, response_body_limit=10)
        endpoint = ScriptedEndpoint(httpx.Response(200, text="x" * 50))
        result = await execute(endpoint, subscriber, settings)
        assert result.response_body == "x" * 10

    @pytest.mark.asyncio
    async def test_latency_recorded(self, subscriber, test_settings):
        """Completed exchanges should record a non-negative latency."""
        result = await execute(ScriptedEndpoint(200), subscriber, test_settings)
        assert result.latency_ms >= 0.0
        assert result.response_snapshot() is not None


class TestWireFormat:
    """Tests for what actually goes over the wire."""

    @pytest.mark.asyncio
    async def test_body_and_headers_sent(self, subscriber, test_settings):
        """The snapshot body and signature should be sent unchanged."""
        endpoint = ScriptedEndpoint(200)
        delivery = build_delivery(subscriber, test_settings, {"id": 7, "note": "café"})

        async with make_client(endpoint) as client:
            executor = DeliveryExecutor(client, RequestBuilder(test_settings), test_settings)
            await executor.execute(delivery, subscriber)

        sent = endpoint.requests[0]
        assert sent.method == "POST"
        assert sent.content == delivery.request.body_bytes
        assert sent.headers["X-Webhook-Signature"] == delivery.request.headers[
            "X-Webhook-Signature"
        ]
        assert sent.headers["X-Webhook-Event"] == "order.created"
        assert sent.headers["Content-Type"] == "application/json"

    @pytest.mark.asyncio
    async def test_bearer_token_applied_per_attempt(self, make_subscriber, test_settings):
        """Bearer credentials should be attached at send time."""
        subscriber = make_subscriber(auth_type="bearer", auth=AuthConfig(token="tok_abc"))
        endpoint = ScriptedEndpoint(200)
        await execute(endpoint, subscriber, test_settings)
        assert endpoint.requests[0].headers["Authorization"] == "Bearer tok_abc"

    @pytest.mark.asyncio
    async def test_basic_auth_applied(self, make_subscriber, test_settings):
        """Basic credentials should produce a Basic Authorization header."""
        subscriber = make_subscriber(
            auth_type="basic", auth=AuthConfig(username="user", password="pass")
        )
        endpoint = ScriptedEndpoint(200)
        await execute(endpoint, subscriber, test_settings)
        assert endpoint.requests[0].headers["Authorization"] == "Basic dXNlcjpwYXNz"
