"""Resilience policy - rate limiter, circuit breaker and timeout around provider calls.

Hey future me - ONE misbehaving provider must never sink a whole multi-provider
resolution. So execute() NEVER raises for provider trouble; it returns a
ResilienceResult and the caller just moves on to the next candidate/provider.

ORDER (fixed):
    1. RateLimiter.try_acquire()      empty bucket  → RATE_LIMITED (fail fast, no queue)
    2. CircuitBreaker permission      open          → CIRCUIT_OPEN (call not attempted)
    3. asyncio.timeout(...)           too slow      → TIMED_OUT   (counts as failure)
    4. the call itself                exception     → FAILED or NO_RESULT

Business "no" answers (exceptions with trips_breaker = False, e.g. Longitood 404 or
a 404 cover URL) come back as NO_RESULT and count as a SUCCESS for the breaker -
the provider answered fine, it just has nothing for us.

CancelledError is NOT swallowed. Cancellation belongs to the caller.

The registry keeps one policy per provider name for the whole process. Tests build
their own registry and force breakers open/closed on it.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

from covershelf.config import ProviderResilienceSettings, ResilienceSettings
from covershelf.infrastructure.observability.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
)
from covershelf.infrastructure.rate_limiter import RateLimiter, RateLimiterConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ResilienceOutcome(str, Enum):
    """How a guarded call ended."""

    SUCCESS = "success"
    NO_RESULT = "no_result"
    RATE_LIMITED = "rate_limited"
    CIRCUIT_OPEN = "circuit_open"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


@dataclass(frozen=True)
class ResilienceResult(Generic[T]):
    """Result of a guarded call. value is only set on SUCCESS."""

    outcome: ResilienceOutcome
    value: T | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is ResilienceOutcome.SUCCESS


class ResiliencePolicy:
    """Guards calls to ONE provider."""

    def __init__(
        self,
        name: str,
        rate_limiter: RateLimiter,
        circuit_breaker: CircuitBreaker,
        timeout_seconds: float,
    ) -> None:
        self.name = name
        self.rate_limiter = rate_limiter
        self.circuit_breaker = circuit_breaker
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_settings(
        cls, name: str, settings: ProviderResilienceSettings
    ) -> ResiliencePolicy:
        """Build a policy from per-provider settings."""
        limiter = RateLimiter(
            config=RateLimiterConfig(
                max_tokens=settings.rate_limit_max_tokens,
                refill_rate=settings.rate_limit_refill_per_second,
            ),
            name=name,
        )
        breaker = CircuitBreaker(
            name,
            CircuitBreakerConfig(
                window_size=settings.breaker_window_size,
                minimum_calls=settings.breaker_minimum_calls,
                failure_rate_threshold=settings.breaker_failure_rate_threshold,
                open_seconds=settings.breaker_open_seconds,
                half_open_calls=settings.breaker_half_open_calls,
            ),
        )
        return cls(name, limiter, breaker, settings.timeout_seconds)

    async def execute(self, call: Callable[[], Awaitable[T]]) -> ResilienceResult[T]:
        """Run a provider call under rate limit, breaker and timeout.

        Args:
            call: Zero-arg coroutine factory (called at most once)

        Returns:
            ResilienceResult - never raises except for cancellation
        """
        if not self.rate_limiter.try_acquire():
            logger.info("Provider %s rate limited, skipping call", self.name)
            return ResilienceResult(ResilienceOutcome.RATE_LIMITED)

        if not self.circuit_breaker.try_acquire_permission():
            logger.info("Provider %s circuit open, skipping call", self.name)
            return ResilienceResult(ResilienceOutcome.CIRCUIT_OPEN)

        try:
            async with asyncio.timeout(self.timeout_seconds):
                value = await call()
        except asyncio.CancelledError:
            self.circuit_breaker.release_permission()
            raise
        except TimeoutError as e:
            self.circuit_breaker.record_failure()
            logger.warning(
                "Provider %s timed out after %.1fs", self.name, self.timeout_seconds
            )
            return ResilienceResult(ResilienceOutcome.TIMED_OUT, error=e)
        except Exception as e:
            if getattr(e, "trips_breaker", True):
                self.circuit_breaker.record_failure()
                logger.warning("Provider %s call failed: %s", self.name, e)
                return ResilienceResult(ResilienceOutcome.FAILED, error=e)
            self.circuit_breaker.record_success()
            logger.debug("Provider %s returned no result: %s", self.name, e)
            return ResilienceResult(ResilienceOutcome.NO_RESULT, error=e)

        self.circuit_breaker.record_success()
        if value is None:
            return ResilienceResult(ResilienceOutcome.NO_RESULT)
        return ResilienceResult(ResilienceOutcome.SUCCESS, value=value)


class ResilienceRegistry:
    """Process-wide map of provider name -> ResiliencePolicy."""

    def __init__(self, settings: ResilienceSettings | None = None) -> None:
        self.settings = settings or ResilienceSettings()
        self._policies: dict[str, ResiliencePolicy] = {}
        self._lock = threading.Lock()

    def get(self, provider: str) -> ResiliencePolicy:
        """Get (or lazily create) the policy for a provider."""
        with self._lock:
            policy = self._policies.get(provider)
            if policy is None:
                policy = ResiliencePolicy.from_settings(
                    provider, self.settings.for_provider(provider)
                )
                self._policies[provider] = policy
            return policy

    def register(self, policy: ResiliencePolicy) -> None:
        """Install a pre-built policy (replaces any existing one)."""
        with self._lock:
            self._policies[policy.name] = policy

    def names(self) -> list[str]:
        """Providers that have a policy so far."""
        with self._lock:
            return sorted(self._policies)
