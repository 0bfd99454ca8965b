"""Tests for ResiliencePolicy and the per-provider registry."""

import asyncio

import pytest

from covershelf.config import ProviderResilienceSettings, ResilienceSettings
from covershelf.domain.exceptions import DownloadFailure, ProviderNoResult
from covershelf.infrastructure.observability.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
)
from covershelf.infrastructure.rate_limiter import RateLimiter, RateLimiterConfig
from covershelf.infrastructure.resilience import (
    ResiliencePolicy,
    ResilienceOutcome,
    ResilienceRegistry,
)


def make_policy(
    max_tokens: int = 10,
    timeout_seconds: float = 1.0,
    minimum_calls: int = 2,
) -> ResiliencePolicy:
    limiter = RateLimiter(RateLimiterConfig(max_tokens=max_tokens, refill_rate=0.0), name="p")
    breaker = CircuitBreaker(
        "p",
        CircuitBreakerConfig(
            window_size=4,
            minimum_calls=minimum_calls,
            failure_rate_threshold=50.0,
            open_seconds=60.0,
            half_open_calls=1,
        ),
    )
    return ResiliencePolicy("p", limiter, breaker, timeout_seconds)


class TestResiliencePolicy:
    """Test guarded provider calls."""

    async def test_success(self) -> None:
        """Test a normal call returns SUCCESS with its value."""
        policy = make_policy()

        async def call() -> str:
            return "cover"

        result = await policy.execute(call)

        assert result.ok
        assert result.value == "cover"

    async def test_none_is_no_result(self) -> None:
        """Test a call returning None is NO_RESULT."""
        policy = make_policy()

        async def call() -> None:
            return None

        result = await policy.execute(call)

        assert result.outcome is ResilienceOutcome.NO_RESULT

    async def test_rate_limited_fails_fast_without_calling(self) -> None:
        """Test an empty bucket skips the call and never waits."""
        policy = make_policy(max_tokens=1)
        calls = 0

        async def call() -> str:
            nonlocal calls
            calls += 1
            return "x"

        await policy.execute(call)
        result = await policy.execute(call)

        assert result.outcome is ResilienceOutcome.RATE_LIMITED
        assert calls == 1

    async def test_rate_limiter_checked_before_breaker(self) -> None:
        """Test an exhausted bucket reports RATE_LIMITED even with an open breaker."""
        policy = make_policy(max_tokens=0)
        policy.circuit_breaker.force_open()

        async def call() -> str:
            return "x"

        result = await policy.execute(call)

        assert result.outcome is ResilienceOutcome.RATE_LIMITED
        assert policy.circuit_breaker.stats().total_rejected == 0

    async def test_circuit_open_skips_call(self) -> None:
        """Test an open breaker returns CIRCUIT_OPEN without calling."""
        policy = make_policy()
        policy.circuit_breaker.force_open()

        async def call() -> str:
            raise AssertionError("must not be called")

        result = await policy.execute(call)

        assert result.outcome is ResilienceOutcome.CIRCUIT_OPEN

    async def test_faults_open_breaker(self) -> None:
        """Test repeated faults open the breaker and later calls are skipped."""
        policy = make_policy()

        async def call() -> str:
            raise DownloadFailure("boom", http_status=503)

        first = await policy.execute(call)
        second = await policy.execute(call)
        third = await policy.execute(call)

        assert first.outcome is ResilienceOutcome.FAILED
        assert isinstance(first.error, DownloadFailure)
        assert second.outcome is ResilienceOutcome.FAILED
        assert third.outcome is ResilienceOutcome.CIRCUIT_OPEN
        assert policy.circuit_breaker.state is CircuitState.OPEN

    async def test_no_result_never_trips_breaker(self) -> None:
        """Test provider 'no cover' answers count as breaker successes."""
        policy = make_policy()

        async def no_cover() -> str:
            raise ProviderNoResult("no cover for isbn")

        async def not_found() -> str:
            raise DownloadFailure("404", reason="not_available", http_status=404)

        for call in (no_cover, not_found, no_cover, not_found):
            result = await policy.execute(call)
            assert result.outcome is ResilienceOutcome.NO_RESULT

        assert policy.circuit_breaker.state is CircuitState.CLOSED
        assert policy.circuit_breaker.stats().failures_in_window == 0

    async def test_timeout(self) -> None:
        """Test slow calls are cut off and counted as failures."""
        policy = make_policy(timeout_seconds=0.01, minimum_calls=1)

        async def slow() -> str:
            await asyncio.sleep(5)
            return "late"

        result = await policy.execute(slow)

        assert result.outcome is ResilienceOutcome.TIMED_OUT
        assert policy.circuit_breaker.state is CircuitState.OPEN

    async def test_cancellation_propagates(self) -> None:
        """Test cancelling the caller is not swallowed and records nothing."""
        policy = make_policy(timeout_seconds=10.0)
        started = asyncio.Event()

        async def slow() -> str:
            started.set()
            await asyncio.sleep(10)
            return "late"

        task = asyncio.create_task(policy.execute(slow))
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert policy.circuit_breaker.stats().calls_in_window == 0


class TestResilienceRegistry:
    """Test the per-provider registry."""

    def test_lazy_policy_per_provider(self) -> None:
        """Test each provider gets exactly one policy from its settings."""
        settings = ResilienceSettings(
            default=ProviderResilienceSettings(timeout_seconds=7.0),
            providers={"longitood": ProviderResilienceSettings(timeout_seconds=3.0)},
        )
        registry = ResilienceRegistry(settings)

        longitood = registry.get("longitood")
        other = registry.get("somewhere-else")

        assert registry.get("longitood") is longitood
        assert longitood.timeout_seconds == 3.0
        assert other.timeout_seconds == 7.0
        assert registry.names() == ["longitood", "somewhere-else"]

    def test_register_replaces(self) -> None:
        """Test a registered policy is returned for its name."""
        registry = ResilienceRegistry()
        policy = make_policy()
        registry.register(policy)
        assert registry.get("p") is policy
