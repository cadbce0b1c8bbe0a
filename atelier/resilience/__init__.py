"""
Resilience patterns for the outbound adapters.

- Circuit Breaker: stops calling a failing best-effort channel
- Re-authenticating retry: refreshes an expired session and retries once
"""

from .circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerError,
    CircuitState,
    get_circuit_breaker,
    get_circuit_breaker_stats,
    reset_circuit_breakers,
)
from .retry_policies import ReauthRetryConfig, SessionExpired, reauthenticating_retry

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerError",
    "CircuitState",
    "get_circuit_breaker",
    "get_circuit_breaker_stats",
    "reset_circuit_breakers",
    "ReauthRetryConfig",
    "SessionExpired",
    "reauthenticating_retry",
]
