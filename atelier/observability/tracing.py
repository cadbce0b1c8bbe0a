# ==== OPENTELEMETRY TRACING CONFIGURATION ==== #

"""
OpenTelemetry tracing configuration for Atelier fulfillment.

Spans wrap every job run, every order transition and every adapter call.
Export is only enabled when an OTLP endpoint is configured.
"""

from typing import Any, Dict

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from atelier.settings import settings


# ==== TRACING INITIALIZATION ==== #


def init_tracing(service_name: str) -> bool:
    """
    Initialize OpenTelemetry tracing with OTLP export.

    Args:
        service_name (str): Name of the service for tracing identification

    Returns:
        bool: True when a tracer provider was installed
    """
    endpoint = settings.OTEL_EXPORTER_OTLP_ENDPOINT

    # ⚠️ Allow local runs without an APM backend
    if not endpoint:
        return False

    resource_attrs = _parse_pairs(settings.OTEL_RESOURCE_ATTRIBUTES)
    resource_attrs["service.name"] = settings.OTEL_SERVICE_NAME or service_name

    provider = TracerProvider(resource=Resource.create(resource_attrs))
    exporter = OTLPSpanExporter(
        endpoint=endpoint,
        headers=_parse_pairs(settings.OTEL_EXPORTER_OTLP_HEADERS)
    )
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)

    # FastAPI instrumentation is done in main.py
    HTTPXClientInstrumentor().instrument()
    return True


def _parse_pairs(raw: str | None) -> Dict[str, Any]:
    """Parse comma-separated ``key=value`` pairs.

    Args:
        raw: Raw environment value

    Returns:
        Dictionary of parsed pairs
    """
    pairs: Dict[str, Any] = {}
    if not raw:
        return pairs

    for part in filter(None, map(str.strip, raw.split(","))):
        if "=" in part:
            key, value = part.split("=", 1)
            pairs[key.strip()] = value.strip()

    return pairs


def get_tracer(name: str) -> trace.Tracer:
    """Get a tracer instance for the given module.

    Args:
        name: Module name (typically __name__)

    Returns:
        Tracer instance
    """
    return trace.get_tracer(name)
