# ==== ATELIER FULFILLMENT MAIN APPLICATION MODULE ==== #

"""
Main FastAPI application for Atelier fulfillment.

Hosts the WhatsApp webhook, the operator order-event endpoint and manual
triggers for the periodic jobs; the jobs themselves run as Prefect flows.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from atelier import __version__
from atelier.errors import (
    AdapterRequestError,
    CarrierAuthenticationError,
    FulfillmentError,
    OrderNotFound,
    TransientAdapterError,
    TransitionRejected,
)
from atelier.middleware.correlation import CorrelationMiddleware
from atelier.observability.logging import get_logger, init_logging
from atelier.observability.metrics import init_metrics, metrics_router
from atelier.observability.tracing import init_tracing
from atelier.routes import health, jobs, orders, whatsapp
from atelier.services.registry import aclose_all
from atelier.settings import settings


logger = get_logger(__name__)


# ==== APPLICATION LIFECYCLE MANAGEMENT ==== #


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Initialize logging and tracing on startup, close adapters on shutdown.

    Args:
        app (FastAPI): FastAPI application instance

    Yields:
        None: Control back to FastAPI during application runtime
    """
    # --► STARTUP SEQUENCE
    init_logging(settings.LOG_LEVEL, settings.LOG_TO_FILES)
    init_tracing(settings.SERVICE_NAME)
    logger.info("Application started", environment=settings.APP_ENV, version=__version__)

    yield

    # --► SHUTDOWN SEQUENCE
    await aclose_all()
    logger.info("Application stopped")


# ==== APPLICATION FACTORY ==== #


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured application instance
    """
    app = FastAPI(
        title="Atelier Fulfillment",
        description="Label-encoded order lifecycle, escalation and carrier reconciliation",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.APP_ENV == "dev" else None,
        redoc_url="/redoc" if settings.APP_ENV == "dev" else None
    )

    init_metrics()

    app.add_middleware(CorrelationMiddleware)

    _register_routers(app)
    _register_exception_handlers(app)

    FastAPIInstrumentor.instrument_app(app)

    return app


def _register_routers(app: FastAPI) -> None:
    app.include_router(metrics_router, prefix="", tags=["monitoring"])
    app.include_router(health.router, prefix="", tags=["health"])
    app.include_router(jobs.router, prefix="/jobs", tags=["jobs"])
    app.include_router(whatsapp.router, prefix="/whatsapp", tags=["whatsapp"])
    app.include_router(orders.router, prefix="/orders", tags=["orders"])


# ==== EXCEPTION HANDLERS ==== #


_ERROR_STATUS = (
    (OrderNotFound, 404, "ORDER_NOT_FOUND"),
    (TransitionRejected, 409, "TRANSITION_REJECTED"),
    (CarrierAuthenticationError, 502, "CARRIER_AUTHENTICATION_FAILED"),
    (TransientAdapterError, 502, "UPSTREAM_UNAVAILABLE"),
    (AdapterRequestError, 502, "UPSTREAM_REJECTED"),
)


def _register_exception_handlers(app: FastAPI) -> None:
    """
    Map fulfillment errors that escape a route to consistent error responses.

    Args:
        app (FastAPI): FastAPI application instance
    """
    @app.exception_handler(FulfillmentError)
    async def fulfillment_error_handler(request: Request, exc: FulfillmentError) -> JSONResponse:
        correlation_id = getattr(request.state, "correlation_id", "unknown")

        status_code, code = 500, "FULFILLMENT_ERROR"
        for error_type, mapped_status, mapped_code in _ERROR_STATUS:
            if isinstance(exc, error_type):
                status_code, code = mapped_status, mapped_code
                break

        logger.warning("Request failed", path=request.url.path, code=code, error=str(exc))
        return JSONResponse(
            status_code=status_code,
            content={
                "error": type(exc).__name__,
                "message": str(exc),
                "correlation_id": correlation_id,
                "code": code
            }
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        correlation_id = getattr(request.state, "correlation_id", "unknown")
        logger.exception("Unhandled error", path=request.url.path, error_type=type(exc).__name__)

        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "message": "An unexpected error occurred",
                "correlation_id": correlation_id,
                "code": "INTERNAL_ERROR"
            }
        )


# ==== APPLICATION INSTANCE ==== #


# Create application instance for deployment
app = create_app()
