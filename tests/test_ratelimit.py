"""Tests for per-subscriber rate limiting."""

import pytest

from hookwire.exceptions import RateLimitError
from hookwire.webhooks.ratelimit import InMemoryRateLimiter


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestInMemoryRateLimiter:
    """Tests for the sliding window limiter."""

    def test_admits_up_to_limit(self):
        """Deliveries up to the limit should be admitted."""
        limiter = InMemoryRateLimiter(window_seconds=60, clock=FakeClock())
        infos = [limiter.check_rate_limit("sub_1", 3) for _ in range(3)]
        assert [info.remaining for info in infos] == [2, 1, 0]

    def test_rejects_over_limit(self):
        """The delivery after the limit should raise RateLimitError."""
        limiter = InMemoryRateLimiter(window_seconds=60, clock=FakeClock())
        for _ in range(2):
            limiter.check_rate_limit("sub_1", 2)

        with pytest.raises(RateLimitError) as exc_info:
            limiter.check_rate_limit("sub_1", 2)
        assert 1 <= exc_info.value.retry_after <= 60

    def test_window_slides(self):
        """Old deliveries should leave the window."""
        clock = FakeClock()
        limiter = InMemoryRateLimiter(window_seconds=60, clock=clock)
        limiter.check_rate_limit("sub_1", 1)

        clock.now += 61
        info = limiter.check_rate_limit("sub_1", 1)
        assert info.remaining == 0

    def test_rejected_check_not_counted(self):
        """A rejected delivery should not consume budget."""
        clock = FakeClock()
        limiter = InMemoryRateLimiter(window_seconds=10, clock=clock)
        limiter.check_rate_limit("sub_1", 1)
        with pytest.raises(RateLimitError):
            limiter.check_rate_limit("sub_1", 1)

        clock.now += 11
        limiter.check_rate_limit("sub_1", 1)

    def test_subscribers_isolated(self):
        """One subscriber's budget should not affect another's."""
        limiter = InMemoryRateLimiter(window_seconds=60, clock=FakeClock())
        limiter.check_rate_limit("sub_1", 1)
        limiter.check_rate_limit("sub_2", 1)

    def test_reset(self):
        """reset() should forget recorded deliveries."""
        limiter = InMemoryRateLimiter(window_seconds=60, clock=FakeClock())
        limiter.check_rate_limit("sub_1", 1)
        limiter.reset("sub_1")
        limiter.check_rate_limit("sub_1", 1)

        limiter.reset()
        limiter.check_rate_limit("sub_1", 1)
