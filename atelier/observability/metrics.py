# ==== PROMETHEUS METRICS ==== #

"""
Prometheus metrics for Atelier fulfillment.

Counters cover state machine transitions, job runs and per-order outcomes,
carrier feed volume, reply correlation and outbound notifications.
"""

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse
from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    REGISTRY
)


# ==== STATE MACHINE METRICS ==== #

order_transitions_total = Counter(
    "atelier_order_transitions_total",
    "Order state machine evaluations by event and outcome",
    ["event", "outcome"]  # outcome: applied, unchanged, rejected, failed
)


# ==== JOB METRICS ==== #

job_runs_total = Counter(
    "atelier_job_runs_total",
    "Periodic job runs by job and outcome",
    ["job", "outcome"]
)

job_orders_total = Counter(
    "atelier_job_orders_total",
    "Orders processed by periodic jobs",
    ["job", "pass_name", "outcome"]  # outcome: successful, failed, skipped
)

job_duration_seconds = Histogram(
    "atelier_job_duration_seconds",
    "Periodic job wall-clock duration in seconds",
    ["job"]
)

carrier_parcels_fetched_total = Counter(
    "atelier_carrier_parcels_fetched_total",
    "Parcels fetched from the carrier feed",
    ["tab"]
)


# ==== MESSAGING METRICS ==== #

correlation_total = Counter(
    "atelier_correlation_total",
    "Inbound reply correlation attempts",
    ["strategy", "outcome"]
)

pending_confirmations_gauge = Gauge(
    "atelier_pending_confirmations",
    "Pending confirmation mappings held in process memory"
)

notifications_total = Counter(
    "atelier_notifications_total",
    "Status-change notifications by outcome",
    ["outcome"]  # outcome: sent, failed, skipped
)


# ==== HTTP METRICS ==== #

http_request_duration_seconds = Histogram(
    "atelier_http_request_duration_seconds",
    "HTTP request latency",
    ["method", "path", "status_code"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0]
)


# System metrics
app_info = Gauge(
    "atelier_app_info",
    "Application information",
    ["version", "environment", "service_name"]
)


def init_metrics() -> None:
    """Publish static application info."""
    from atelier import __version__
    from atelier.settings import settings
    app_info.labels(
        version=__version__,
        environment=settings.APP_ENV,
        service_name=settings.SERVICE_NAME
    ).set(1)


# Metrics router for Prometheus scraping
metrics_router = APIRouter()


@metrics_router.get("/metrics")
def get_metrics() -> PlainTextResponse:
    """Expose Prometheus metrics for scraping."""
    return PlainTextResponse(
        generate_latest(REGISTRY).decode("utf-8"),
        media_type="text/plain"
    )
