"""Structured logging for Hookwire.

Every component logs through structlog with key/value context. Delivery
tasks bind ``delivery_id`` (and usually ``subscriber_id``) into contextvars,
so lines emitted anywhere in one delivery's pipeline carry its identity
without passing a logger around.

Output is JSON lines by default and a colored console rendering when
``HOOKWIRE_LOG_FORMAT=text``.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING

import structlog

from hookwire.config import Settings
from hookwire.config import settings as default_settings

if TYPE_CHECKING:
    from structlog.typing import Processor

_configured = False


def _processors(format: str) -> list[Processor]:
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if format == "json":
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))
    return processors


def configure_logging(
    level: str | None = None,
    format: str | None = None,
    settings: Settings | None = None,
) -> None:
    """Configure structlog and the stdlib root handler.

    Explicit arguments win over ``settings.log_level`` and
    ``settings.log_format``. Calling it again replaces the configuration.

    Args:
        level: Log level name. Unknown names fall back to INFO.
        format: "json" or "text".
        settings: Settings to read defaults from.

    Example:
        ```python
        from hookwire.logging import configure_logging, get_logger

        configure_logging(level="DEBUG", format="text")
        get_logger(__name__).info("Dispatcher started", subscribers=3)
        ```
    """
    global _configured

    cfg = settings or default_settings
    level_name = (level or cfg.log_level).upper()
    log_level = logging.getLevelName(level_name)
    if not isinstance(log_level, int):
        log_level = logging.INFO

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level, force=True)

    structlog.configure(
        processors=_processors((format or cfg.log_format).lower()),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _configured = True


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger, configuring logging on first use."""
    if not _configured:
        configure_logging()
    return structlog.get_logger(name)  # type: ignore[no-any-return]


def bind_context(**kwargs: object) -> None:
    """Bind key/value pairs to every log line of the current task."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Remove keys from the current task's logging context."""
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    """Drop all bound context."""
    structlog.contextvars.clear_contextvars()


@contextmanager
def delivery_context(delivery_id: str, **extra: object) -> Iterator[None]:
    """Bind a delivery's identity for the duration of a block.

    Args:
        delivery_id: Delivery being processed.
        **extra: Further keys, typically ``subscriber_id`` and ``event_name``.
    """
    bind_context(delivery_id=delivery_id, **extra)
    try:
        yield
    finally:
        unbind_context("delivery_id", *extra)
