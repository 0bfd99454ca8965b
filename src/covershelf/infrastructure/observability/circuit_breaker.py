"""Circuit breaker with a count-based sliding window.

Hey future me - the old "open after N failures in a row" breaker was too twitchy
for cover CDNs, which fail ~randomly. This one looks at the LAST window_size calls
and opens when the failure RATE crosses the threshold (after minimum_calls, so two
failures out of two calls at startup don't open it).

STATES:
    CLOSED ──(failure rate >= threshold)──► OPEN
    OPEN ──(open_seconds elapsed)──► HALF_OPEN
    HALF_OPEN ──(half_open_calls probes all succeed)──► CLOSED
    HALF_OPEN ──(any probe fails)──► OPEN

FORCED_OPEN / FORCED_CLOSED are manual overrides (tests, emergency switch-off).

Breakers are shared per provider by every concurrent resolution task, so all state
changes go through a threading.Lock. No await inside the lock, ever.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"
    FORCED_OPEN = "forced_open"
    FORCED_CLOSED = "forced_closed"


@dataclass(frozen=True)
class CircuitBreakerConfig:
    """Circuit breaker configuration."""

    window_size: int = 20
    minimum_calls: int = 5
    failure_rate_threshold: float = 50.0  # percent
    open_seconds: float = 30.0
    half_open_calls: int = 2


@dataclass(frozen=True)
class CircuitBreakerStats:
    """Point-in-time snapshot for monitoring."""

    name: str
    state: CircuitState
    calls_in_window: int
    failures_in_window: int
    failure_rate: float
    total_rejected: int


class CircuitBreaker:
    """Sliding-window circuit breaker."""

    def __init__(
        self,
        name: str,
        config: CircuitBreakerConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize circuit breaker.

        Args:
            name: Provider name (for logs/stats)
            config: Thresholds, defaults to CircuitBreakerConfig()
            clock: Monotonic clock (tests inject a fake)
        """
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._window: deque[bool] = deque(maxlen=self.config.window_size)
        self._opened_at: float | None = None
        self._half_open_in_flight = 0
        self._half_open_successes = 0
        self._total_rejected = 0

    @property
    def state(self) -> CircuitState:
        """Current state (an expired OPEN reports as HALF_OPEN)."""
        with self._lock:
            self._maybe_half_open()
            return self._state

    def _maybe_half_open(self) -> None:
        if self._state is not CircuitState.OPEN or self._opened_at is None:
            return
        if self._clock() - self._opened_at >= self.config.open_seconds:
            self._state = CircuitState.HALF_OPEN
            self._half_open_in_flight = 0
            self._half_open_successes = 0
            logger.info("Circuit breaker [%s] half-open, probing", self.name)

    def _failure_rate(self) -> float:
        if not self._window:
            return 0.0
        failures = sum(1 for ok in self._window if not ok)
        return failures * 100.0 / len(self._window)

    def _open(self) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = self._clock()
        self._half_open_in_flight = 0
        self._half_open_successes = 0
        logger.warning(
            "Circuit breaker [%s] opened",
            self.name,
            extra={
                "provider": self.name,
                "failure_rate": self._failure_rate(),
                "calls_in_window": len(self._window),
            },
        )

    def _close(self) -> None:
        self._state = CircuitState.CLOSED
        self._opened_at = None
        self._window.clear()
        logger.info("Circuit breaker [%s] closed", self.name)

    def try_acquire_permission(self) -> bool:
        """Ask whether a call may go through right now.

        In HALF_OPEN only half_open_calls probes are let through at a time.
        """
        with self._lock:
            self._maybe_half_open()
            state = self._state
            if state in (CircuitState.CLOSED, CircuitState.FORCED_CLOSED):
                return True
            if state is CircuitState.HALF_OPEN:
                if self._half_open_in_flight < self.config.half_open_calls:
                    self._half_open_in_flight += 1
                    return True
            self._total_rejected += 1
            return False

    def release_permission(self) -> None:
        """Give back a half-open probe slot without recording an outcome (cancelled call)."""
        with self._lock:
            if self._state is CircuitState.HALF_OPEN and self._half_open_in_flight > 0:
                self._half_open_in_flight -= 1

    def record_success(self) -> None:
        """Record a successful call."""
        with self._lock:
            if self._state is CircuitState.HALF_OPEN:
                self._half_open_in_flight = max(0, self._half_open_in_flight - 1)
                self._half_open_successes += 1
                if self._half_open_successes >= self.config.half_open_calls:
                    self._close()
                return
            if self._state is CircuitState.CLOSED:
                self._window.append(True)

    def record_failure(self) -> None:
        """Record a failed call."""
        with self._lock:
            if self._state is CircuitState.HALF_OPEN:
                self._open()
                return
            if self._state is not CircuitState.CLOSED:
                return
            self._window.append(False)
            if (
                len(self._window) >= self.config.minimum_calls
                and self._failure_rate() >= self.config.failure_rate_threshold
            ):
                self._open()

    def force_open(self) -> None:
        """Reject every call until reset()."""
        with self._lock:
            self._state = CircuitState.FORCED_OPEN

    def force_closed(self) -> None:
        """Allow every call until reset(), ignoring failures."""
        with self._lock:
            self._state = CircuitState.FORCED_CLOSED

    def reset(self) -> None:
        """Back to a fresh CLOSED breaker."""
        with self._lock:
            self._state = CircuitState.CLOSED
            self._opened_at = None
            self._window.clear()
            self._half_open_in_flight = 0
            self._half_open_successes = 0

    def stats(self) -> CircuitBreakerStats:
        """Snapshot for monitoring."""
        with self._lock:
            self._maybe_half_open()
            return CircuitBreakerStats(
                name=self.name,
                state=self._state,
                calls_in_window=len(self._window),
                failures_in_window=sum(1 for ok in self._window if not ok),
                failure_rate=self._failure_rate(),
                total_rejected=self._total_rejected,
            )
