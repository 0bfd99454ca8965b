"""Observability - logging and circuit breakers."""

from .circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerStats,
    CircuitState,
)
from .logging import configure_logging, get_correlation_id, set_correlation_id

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerStats",
    "CircuitState",
    "configure_logging",
    "get_correlation_id",
    "set_correlation_id",
]
