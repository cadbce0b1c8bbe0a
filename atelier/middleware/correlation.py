# ==== CORRELATION ID MIDDLEWARE ==== #

"""
Correlation ID middleware for request tracing.

Every request gets an ``X-Correlation-Id`` (taken from the caller or
generated), a request span and a latency observation.
"""

import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from atelier.observability.metrics import http_request_duration_seconds
from atelier.observability.tracing import get_tracer


# ==== MODULE INITIALIZATION ==== #

tracer = get_tracer(__name__)


# ==== CORRELATION MIDDLEWARE CLASS ==== #

class CorrelationMiddleware(BaseHTTPMiddleware):
    """Attach a correlation id to the request state and the response headers."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """
        Process request with correlation ID tracking.

        Args:
            request (Request): Incoming HTTP request
            call_next (Callable): Next middleware/handler in chain

        Returns:
            Response: HTTP response with correlation ID header
        """
        correlation_id = request.headers.get("X-Correlation-Id", str(uuid.uuid4()))
        request.state.correlation_id = correlation_id

        start_time = time.perf_counter()

        with tracer.start_as_current_span("http_request") as span:
            span.set_attribute("http.method", request.method)
            span.set_attribute("http.url", str(request.url))
            span.set_attribute("correlation_id", correlation_id)

            response = await call_next(request)

            response.headers["X-Correlation-Id"] = correlation_id

            # --► METRICS COLLECTION
            # Label by route template, not raw path
            route = request.scope.get("route")
            path = getattr(route, "path", "unmatched")
            http_request_duration_seconds.labels(
                method=request.method,
                path=path,
                status_code=str(response.status_code)
            ).observe(time.perf_counter() - start_time)

            span.set_attribute("http.status_code", response.status_code)

            return response
