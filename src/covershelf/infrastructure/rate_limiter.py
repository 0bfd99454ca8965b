"""
Per-provider Rate Limiter for external cover calls.

Hey future me – das ist der Token Bucket für jeden Cover-Provider!
Anders als ein klassischer Limiter WARTET dieser nicht: wenn der Bucket leer ist,
antworten wir sofort mit "rate limited". Eine Cover-Auflösung soll nie in einer
Queue hängen, nur weil ein Provider gerade gedrosselt ist - der nächste Kandidat
oder Provider ist wichtiger.

ALGORITHMUS: Token Bucket
- Bucket hat max_tokens Kapazität
- Tokens werden mit refill_rate/sec nachgefüllt
- Jede Anfrage verbraucht 1 Token
- Wenn leer: try_acquire() gibt False zurück (fail fast)

THREAD-SAFETY:
Der Limiter ist prozessweiter Shared State (ein Limiter pro Provider, siehe
resilience.py). try_acquire() hat keine await-Punkte und nimmt einen
threading.Lock, also ist er sicher aus asyncio Tasks UND Threads.

USAGE:
    limiter = RateLimiter(RateLimiterConfig(max_tokens=10, refill_rate=2.0))

    if not limiter.try_acquire():
        return rate_limited_result
"""

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass
class RateLimiterConfig:
    """Configuration for rate limiter."""

    max_tokens: int = 10  # Bucket size (burst)
    refill_rate: float = 2.0  # Tokens per second


@dataclass
class RateLimiter:
    """Non-blocking token bucket rate limiter.

    Attributes:
        config: Rate limiter configuration
        name: Provider name (for logs)
        clock: Monotonic clock (tests inject a fake)
        _tokens: Current available tokens
        _last_refill: Last time tokens were refilled
        _lock: Lock for thread-safety
    """

    config: RateLimiterConfig = field(default_factory=RateLimiterConfig)
    name: str = "default"
    clock: Callable[[], float] = time.monotonic

    # Internal state (not in __init__ signature)
    _tokens: float = field(default=0.0, init=False)
    _last_refill: float = field(default=0.0, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False)

    def __post_init__(self) -> None:
        """Initialize tokens to max capacity."""
        self._tokens = float(self.config.max_tokens)
        self._last_refill = self.clock()

    def _refill_tokens(self) -> None:
        """Refill tokens based on elapsed time.

        Hey future me – das ist der Token Bucket Algorithmus!
        Wir berechnen, wie viele Tokens seit letztem Refill dazugekommen sind.
        Caller muss _lock halten.
        """
        now = self.clock()
        elapsed = max(0.0, now - self._last_refill)

        new_tokens = elapsed * self.config.refill_rate
        self._tokens = min(float(self.config.max_tokens), self._tokens + new_tokens)
        self._last_refill = now

    def try_acquire(self) -> bool:
        """Take one token if available. Never waits.

        Returns:
            True if a token was consumed, False if the bucket is empty
        """
        with self._lock:
            self._refill_tokens()
            if self._tokens < 1.0:
                logger.debug(
                    "RateLimiter[%s]: bucket empty, rejecting call", self.name
                )
                return False
            self._tokens -= 1.0
            logger.debug(
                "RateLimiter[%s]: token acquired, %.1f remaining",
                self.name,
                self._tokens,
            )
            return True

    @property
    def available_tokens(self) -> float:
        """Get current available tokens (for monitoring)."""
        with self._lock:
            self._refill_tokens()
            return self._tokens

    def reset(self) -> None:
        """Refill the bucket completely (tests, manual recovery)."""
        with self._lock:
            self._tokens = float(self.config.max_tokens)
            self._last_refill = self.clock()
