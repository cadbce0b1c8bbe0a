"""
Circuit breaker guarding best-effort outbound channels.

The notification sink and the messaging adapter are wrapped so that a dead
webhook or an expired messaging token stops being hammered on every order.
"""

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from atelier.observability.logging import get_logger


logger = get_logger(__name__)


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"        # Calls pass through
    OPEN = "open"            # Calls rejected immediately
    HALF_OPEN = "half_open"  # Probing recovery


class CircuitBreakerError(Exception):
    """Raised when a call is rejected by an open circuit."""

    def __init__(self, name: str):
        super().__init__(f"Circuit breaker '{name}' is OPEN")
        self.name = name


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker."""
    failure_threshold: int = 5
    recovery_timeout: float = 60.0
    expected_exception: type = Exception
    success_threshold: int = 1


class CircuitBreaker:
    """
    Count consecutive failures and short-circuit calls once a threshold is hit.

    After ``recovery_timeout`` seconds the breaker lets calls through again in
    HALF_OPEN; ``success_threshold`` successes close it, one failure reopens it.
    """

    def __init__(self, name: str, config: Optional[CircuitBreakerConfig] = None):
        self.name = name
        self.config = config or CircuitBreakerConfig()

        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time: Optional[float] = None
        self.state = CircuitState.CLOSED
        self._lock = asyncio.Lock()

    async def __aenter__(self):
        await self._before_call()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            await self._on_success()
        elif issubclass(exc_type, self.config.expected_exception):
            await self._on_failure()
        return False

    async def _before_call(self) -> None:
        async with self._lock:
            if self.state != CircuitState.OPEN:
                return
            elapsed = time.monotonic() - (self.last_failure_time or 0.0)
            if elapsed < self.config.recovery_timeout:
                raise CircuitBreakerError(self.name)
            self._transition(CircuitState.HALF_OPEN)
            self.success_count = 0

    async def _on_success(self) -> None:
        async with self._lock:
            if self.state == CircuitState.HALF_OPEN:
                self.success_count += 1
                if self.success_count >= self.config.success_threshold:
                    self.reset()
            else:
                self.failure_count = 0

    async def _on_failure(self) -> None:
        async with self._lock:
            self.failure_count += 1
            self.last_failure_time = time.monotonic()

            if self.state == CircuitState.HALF_OPEN or (
                self.failure_count >= self.config.failure_threshold
            ):
                self._transition(CircuitState.OPEN)

    def _transition(self, new_state: CircuitState) -> None:
        if new_state != self.state:
            logger.warning(
                "Circuit breaker state change",
                breaker=self.name,
                from_state=self.state.value,
                to_state=new_state.value,
                failure_count=self.failure_count,
            )
        self.state = new_state

    def reset(self) -> None:
        """Close the breaker and forget past failures."""
        self._transition(CircuitState.CLOSED)
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time = None

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    def get_stats(self) -> dict:
        return {
            "state": self.state.value,
            "failure_count": self.failure_count,
            "failure_threshold": self.config.failure_threshold,
            "recovery_timeout": self.config.recovery_timeout,
        }

    async def call(self, func: Callable, *args, **kwargs) -> Any:
        """Await ``func`` under circuit breaker protection."""
        async with self:
            return await func(*args, **kwargs)


# Global circuit breakers registry
_circuit_breakers: Dict[str, CircuitBreaker] = {}


def get_circuit_breaker(name: str, config: Optional[CircuitBreakerConfig] = None) -> CircuitBreaker:
    """Get or create a circuit breaker by name."""
    if name not in _circuit_breakers:
        _circuit_breakers[name] = CircuitBreaker(name, config)
    return _circuit_breakers[name]


def get_circuit_breaker_stats() -> Dict[str, dict]:
    """Get statistics for all registered circuit breakers."""
    return {name: cb.get_stats() for name, cb in _circuit_breakers.items()}


def reset_circuit_breakers() -> None:
    """Drop every registered breaker."""
    _circuit_breakers.clear()
