"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

# Add tests directory to path so helpers can be imported
tests_dir = Path(__file__).parent
if str(tests_dir) not in sys.path:
    sys.path.insert(0, str(tests_dir))

from helpers import ScriptedEndpoint  # noqa: E402

from hookwire.config import Settings  # noqa: E402
from hookwire.models import RetryPolicy, Subscriber  # noqa: E402
from hookwire.storage import InMemoryDeliveryStore, InMemorySubscriberRegistry  # noqa: E402


@pytest.fixture
def test_settings() -> Settings:
    """Settings isolated from the environment and .env files."""
    return Settings(_env_file=None, env="test")


@pytest.fixture
def make_subscriber() -> Callable[..., Subscriber]:
    """Factory for subscribers with fast retry defaults."""

    def _make(**overrides: Any) -> Subscriber:
        data: dict[str, Any] = {
            "url": "https://hooks.example.com/receive",
            "secret": "whsec_test_secret",
            "events": ["order.created"],
            "retry": RetryPolicy(max_attempts=3, base_delay_ms=10, max_delay_ms=50),
        }
        data.update(overrides)
        return Subscriber(**data)

    return _make


@pytest.fixture
def subscriber(make_subscriber: Callable[..., Subscriber]) -> Subscriber:
    """A single active subscriber for order.created."""
    return make_subscriber(id="sub_orders")


@pytest.fixture
def registry(subscriber: Subscriber) -> InMemorySubscriberRegistry:
    """Registry seeded with the default subscriber."""
    return InMemorySubscriberRegistry([subscriber])


@pytest.fixture
def store() -> InMemoryDeliveryStore:
    """Empty in-memory delivery store."""
    return InMemoryDeliveryStore()


@pytest.fixture
def endpoint() -> ScriptedEndpoint:
    """Endpoint that always answers 200."""
    return ScriptedEndpoint(200)
