"""Configuration management for Hookwire."""

import logging
import warnings
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Hookwire configuration loaded from environment variables.

    All settings can be overridden via environment variables with
    the HOOKWIRE_ prefix. For example:
        HOOKWIRE_REQUEST_TIMEOUT_SECONDS=10
        HOOKWIRE_STORAGE_BACKEND=qdrant

    Security Notes:
        - In production (HOOKWIRE_ENV=production), unsigned deliveries
          log a warning unless HOOKWIRE_REQUIRE_SIGNATURES=true
    """

    # Environment
    env: Literal["development", "production", "test"] = Field(
        default="development",
        description="Environment: development, production, or test",
    )

    # Wire contract
    user_agent: str = Field(
        default="VeeFore-Webhook/1.0",
        description="Fixed User-Agent sent with every delivery",
    )
    event_header: str = Field(
        default="X-Webhook-Event",
        description="Header carrying the event name",
    )
    signature_header: str = Field(
        default="X-Webhook-Signature",
        description="Header carrying the hex HMAC-SHA256 signature",
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        gt=0.0,
        le=300.0,
        description="Timeout for a single delivery attempt",
    )
    response_body_limit: int = Field(
        default=1000,
        ge=0,
        le=100_000,
        description="Maximum characters of a response body kept on the delivery record",
    )

    # Delivery behavior
    retry_client_errors: bool = Field(
        default=True,
        description=(
            "Retry 4xx responses exactly like 5xx responses. "
            "Set to false to treat client errors as terminal rejections."
        ),
    )
    require_signatures: bool = Field(
        default=False,
        description=(
            "Treat subscribers without a signing secret as misconfigured. "
            "Such subscribers are skipped instead of receiving unsigned deliveries."
        ),
    )
    default_test_event: str = Field(
        default="test",
        description="Event name used by the subscriber preview path",
    )

    # Rate limiting
    rate_limit_window_seconds: int = Field(
        default=60,
        ge=1,
        le=86400,
        description="Sliding window length for per-subscriber rate limiting",
    )
    rate_limit_default: int = Field(
        default=60,
        ge=1,
        description="Deliveries per window when a subscriber sets no explicit budget",
    )

    # Recovery
    recovery_batch_size: int = Field(
        default=500,
        ge=1,
        le=100_000,
        description="Maximum unfinished deliveries loaded by the startup recovery sweep",
    )

    # Storage
    storage_backend: Literal["memory", "qdrant"] = Field(
        default="memory",
        description="Delivery/subscriber store: in-process memory or Qdrant",
    )
    qdrant_url: str = Field(
        default="http://localhost:6333",
        description="Qdrant connection URL",
    )
    qdrant_api_key: str | None = Field(
        default=None,
        description="Qdrant API key (for cloud)",
    )
    collection_prefix: str = Field(
        default="hookwire",
        description="Prefix for Qdrant collection names",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_format: Literal["json", "text"] = Field(
        default="json",
        description="Log output format",
    )

    model_config = {
        "env_prefix": "HOOKWIRE_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_nested_delimiter": "__",
    }

    @model_validator(mode="after")
    def validate_security_settings(self) -> "Settings":
        """Warn when production allows unsigned deliveries."""
        if self.env == "production" and not self.require_signatures:
            warnings.warn(
                "Unsigned webhook deliveries are allowed in production. "
                "Set HOOKWIRE_REQUIRE_SIGNATURES=true to reject subscribers without a secret.",
                UserWarning,
                stacklevel=2,
            )
            logger.warning("Unsigned webhook deliveries allowed in production")
        return self


# Global settings instance
settings = Settings()
