"""Retry of transient storage failures.

Storage calls sit on the dispatch path: a save that fails surfaces to the
producer as a StorageError. A brief outage of the Qdrant server should not
do that, so connection errors, timeouts and 5xx responses are retried a few
times with exponential backoff before giving up.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, TypeVar

import httpx
from qdrant_client.http.exceptions import UnexpectedResponse
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from hookwire.logging import get_logger

logger = get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

STORAGE_RETRY_ATTEMPTS = 3
STORAGE_RETRY_MAX_WAIT = 10.0


def _is_retryable_qdrant_error(exc: BaseException) -> bool:
    """Only network failures and 5xx responses are worth retrying."""
    if isinstance(exc, httpx.ConnectError | httpx.TimeoutException):
        return True
    if isinstance(exc, UnexpectedResponse):
        return exc.status_code is not None and exc.status_code >= 500
    return False


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Retrying storage operation",
        attempt=retry_state.attempt_number,
        operation=retry_state.fn.__name__ if retry_state.fn else "unknown",
        error=str(exc) if exc else None,
    )


def storage_retry(
    attempts: int = STORAGE_RETRY_ATTEMPTS,
    max_wait: float = STORAGE_RETRY_MAX_WAIT,
) -> Callable[[F], F]:
    """Build a retry decorator for async storage calls.

    Args:
        attempts: Total tries, including the first.
        max_wait: Cap on the backoff between tries, in seconds.
    """
    return retry(  # type: ignore[return-value]
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=1, min=1, max=max_wait),
        retry=retry_if_exception(_is_retryable_qdrant_error),
        before_sleep=_log_retry,
        reraise=True,
    )


qdrant_retry = storage_retry()
