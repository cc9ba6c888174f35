"""Unit tests for Hookwire configuration."""

import os
import warnings
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from hookwire.config import Settings


class TestSettings:
    """Tests for Settings model."""

    def test_default_settings(self):
        """Default settings should match the delivery wire contract."""
        # Use _env_file=None to prevent reading from .env file
        settings = Settings(_env_file=None)
        assert settings.user_agent == "VeeFore-Webhook/1.0"
        assert settings.event_header == "X-Webhook-Event"
        assert settings.signature_header == "X-Webhook-Signature"
        assert settings.request_timeout_seconds == 30.0
        assert settings.response_body_limit == 1000
        assert settings.retry_client_errors is True
        assert settings.rate_limit_window_seconds == 60

    def test_storage_defaults(self):
        """Storage should default to memory with a Qdrant fallback URL."""
        settings = Settings(_env_file=None)
        assert settings.qdrant_url == "http://localhost:6333"
        assert settings.collection_prefix == "hookwire"
        assert settings.storage_backend in ("memory", "qdrant")

    def test_log_format_options(self):
        """log_format should accept json and text."""
        assert Settings(_env_file=None, log_format="json").log_format == "json"
        assert Settings(_env_file=None, log_format="text").log_format == "text"

    def test_invalid_log_format(self):
        """Unknown log formats should be rejected."""
        with pytest.raises(ValidationError):
            Settings(_env_file=None, log_format="xml")

    def test_timeout_bounds(self):
        """Timeouts must be positive and bounded."""
        with pytest.raises(ValidationError):
            Settings(_env_file=None, request_timeout_seconds=0)
        with pytest.raises(ValidationError):
            Settings(_env_file=None, request_timeout_seconds=301)

    def test_env_prefix(self):
        """Settings should use HOOKWIRE_ prefix for environment variables."""
        with patch.dict(os.environ, {"HOOKWIRE_LOG_LEVEL": "DEBUG"}):
            settings = Settings(_env_file=None)
            assert settings.log_level == "DEBUG"

    def test_env_overrides_behavior(self):
        """Delivery behavior should be configurable from the environment."""
        env = {
            "HOOKWIRE_RETRY_CLIENT_ERRORS": "false",
            "HOOKWIRE_REQUEST_TIMEOUT_SECONDS": "5",
        }
        with patch.dict(os.environ, env):
            settings = Settings(_env_file=None)
            assert settings.retry_client_errors is False
            assert settings.request_timeout_seconds == 5.0


class TestSecuritySettings:
    """Tests for production signing checks."""

    def test_production_without_required_signatures_warns(self):
        """Production should warn when unsigned deliveries are allowed."""
        with pytest.warns(UserWarning, match="Unsigned webhook deliveries"):
            Settings(_env_file=None, env="production")

    def test_production_with_required_signatures_silent(self):
        """Requiring signatures should silence the production warning."""
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            Settings(_env_file=None, env="production", require_signatures=True)

    def test_development_silent(self):
        """Development should not warn."""
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            Settings(_env_file=None, env="development")
