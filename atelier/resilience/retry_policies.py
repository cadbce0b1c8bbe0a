"""Retry policies for adapter calls."""

from dataclasses import dataclass
from typing import Awaitable, Callable

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_none,
)

from atelier.observability.tracing import get_tracer
from prometheus_client import Counter

tracer = get_tracer(__name__)

# Metrics
retry_attempts_total = Counter(
    "atelier_retry_attempts_total",
    "Total retry attempts",
    ["service", "operation", "attempt"]
)

retry_failures_total = Counter(
    "atelier_retry_failures_total",
    "Total retry failures after all attempts",
    ["service", "operation", "error_type"]
)


class SessionExpired(Exception):
    """Upstream rejected the cached session token (HTTP 401)."""


@dataclass
class ReauthRetryConfig:
    """Configuration for re-authenticate-and-retry behavior."""
    max_attempts: int = 2


def reauthenticating_retry(
    service_name: str,
    operation_name: str,
    reauthenticate: Callable[[], Awaitable[None]],
    config: ReauthRetryConfig | None = None,
) -> AsyncRetrying:
    """Build a retrying loop that refreshes the session between attempts.

    Only ``SessionExpired`` is retried. Any other error propagates on the
    first attempt; the last ``SessionExpired`` is re-raised once attempts run out.

    Args:
        service_name: Service label for metrics and spans
        operation_name: Operation label for metrics and spans
        reauthenticate: Coroutine invoked before each retry
        config: Optional attempt configuration

    Returns:
        AsyncRetrying: Iterate with ``async for attempt in ...: with attempt:``
    """
    config = config or ReauthRetryConfig()

    async def before_sleep(retry_state: RetryCallState) -> None:
        attempt = retry_state.attempt_number
        retry_attempts_total.labels(
            service=service_name,
            operation=operation_name,
            attempt=str(attempt)
        ).inc()

        with tracer.start_as_current_span("retry_reauthenticate") as span:
            span.set_attribute("service", service_name)
            span.set_attribute("operation", operation_name)
            span.set_attribute("attempt", attempt)
            await reauthenticate()

    def after(retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        if outcome is not None and outcome.failed and (
            retry_state.attempt_number >= config.max_attempts
        ):
            retry_failures_total.labels(
                service=service_name,
                operation=operation_name,
                error_type=type(outcome.exception()).__name__
            ).inc()

    return AsyncRetrying(
        stop=stop_after_attempt(config.max_attempts),
        wait=wait_none(),
        retry=retry_if_exception_type(SessionExpired),
        before_sleep=before_sleep,
        after=after,
        reraise=True,
    )
