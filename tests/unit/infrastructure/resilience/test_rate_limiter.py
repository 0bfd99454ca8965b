"""Tests for the fail-fast token bucket."""

from covershelf.infrastructure.rate_limiter import RateLimiter, RateLimiterConfig


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestRateLimiter:
    """Test token bucket behavior."""

    def test_burst_then_reject(self) -> None:
        """Test the bucket allows max_tokens calls then rejects immediately."""
        clock = FakeClock()
        limiter = RateLimiter(RateLimiterConfig(max_tokens=3, refill_rate=1.0), clock=clock)

        assert [limiter.try_acquire() for _ in range(4)] == [True, True, True, False]

    def test_refill_over_time(self) -> None:
        """Test tokens come back at refill_rate per second."""
        clock = FakeClock()
        limiter = RateLimiter(RateLimiterConfig(max_tokens=2, refill_rate=2.0), clock=clock)
        limiter.try_acquire()
        limiter.try_acquire()
        assert limiter.try_acquire() is False

        clock.now += 0.5
        assert limiter.try_acquire() is True
        assert limiter.try_acquire() is False

    def test_refill_capped_at_max(self) -> None:
        """Test a long idle period never exceeds bucket size."""
        clock = FakeClock()
        limiter = RateLimiter(RateLimiterConfig(max_tokens=2, refill_rate=5.0), clock=clock)
        clock.now += 3600
        assert limiter.available_tokens == 2.0

    def test_clock_going_backwards_is_ignored(self) -> None:
        """Test negative elapsed time adds no tokens."""
        clock = FakeClock()
        limiter = RateLimiter(RateLimiterConfig(max_tokens=1, refill_rate=1.0), clock=clock)
        assert limiter.try_acquire() is True
        clock.now -= 10
        assert limiter.try_acquire() is False

    def test_reset(self) -> None:
        """Test reset refills the bucket."""
        clock = FakeClock()
        limiter = RateLimiter(RateLimiterConfig(max_tokens=1, refill_rate=0.0), clock=clock)
        limiter.try_acquire()
        limiter.reset()
        assert limiter.try_acquire() is True
