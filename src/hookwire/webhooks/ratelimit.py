"""Per-subscriber delivery rate limiting.

Exceeding the limit skips delivery creation for that event. It is not a
delivery failure and does not touch subscriber health.
"""

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from collections import defaultdict
from collections.abc import Callable

from pydantic import BaseModel, ConfigDict, Field

from hookwire.exceptions import RateLimitError
from hookwire.logging import get_logger

logger = get_logger(__name__)


class RateLimitInfo(BaseModel):
    """Rate limit status for a subscriber after an admitted delivery.

    Attributes:
        limit: Maximum deliveries allowed per window.
        remaining: Deliveries remaining in current window.
        reset_at: Unix timestamp when the window resets.
    """

    model_config = ConfigDict(extra="forbid")

    limit: int = Field(ge=0, description="Maximum deliveries allowed per window")
    remaining: int = Field(ge=0, description="Deliveries remaining in current window")
    reset_at: int = Field(description="Unix timestamp when the window resets")


class RateLimiter(ABC):
    """Abstract base class for rate limiters.

    Implementations must make check-and-record atomic per subscriber.
    """

    @abstractmethod
    def check_rate_limit(self, subscriber_id: str, limit: int) -> RateLimitInfo:
        """Admit one delivery for a subscriber or raise.

        Args:
            subscriber_id: Subscriber being delivered to.
            limit: Maximum deliveries per window.

        Returns:
            RateLimitInfo with current status.

        Raises:
            RateLimitError: If rate limit exceeded.
        """
        ...


class InMemoryRateLimiter(RateLimiter):
    """In-memory rate limiter using a sliding window.

    Not shared between processes; each dispatcher instance enforces its
    own budget.
    """

    def __init__(
        self,
        window_seconds: int = 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        # Structure: {subscriber_id: [timestamp, ...]}
        self._requests: dict[str, list[float]] = defaultdict(list)

    def check_rate_limit(self, subscriber_id: str, limit: int) -> RateLimitInfo:
        """Admit one delivery for a subscriber or raise RateLimitError."""
        with self._lock:
            now = self._clock()
            window_start = now - self.window_seconds
            reset_at = int(now) + self.window_seconds

            timestamps = self._requests[subscriber_id]
            timestamps[:] = [ts for ts in timestamps if ts > window_start]
            count = len(timestamps)

            if count >= limit:
                retry_after = max(1, int(timestamps[0] + self.window_seconds - now))
                logger.info(
                    "Rate limit exceeded",
                    subscriber_id=subscriber_id,
                    limit=limit,
                    retry_after=retry_after,
                )
                raise RateLimitError(retry_after)

            timestamps.append(now)

        return RateLimitInfo(
            limit=limit,
            remaining=limit - count - 1,
            reset_at=reset_at,
        )

    def reset(self, subscriber_id: str | None = None) -> None:
        """Forget recorded deliveries for one subscriber or all of them."""
        with self._lock:
            if subscriber_id is None:
                self._requests.clear()
            else:
                self._requests.pop(subscriber_id, None)
