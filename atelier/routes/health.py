# ==== HEALTH CHECK ROUTES ==== #

"""Liveness probe with the state of every outbound circuit breaker."""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter

from atelier import __version__
from atelier.resilience import get_circuit_breaker_stats
from atelier.settings import settings


router = APIRouter()


@router.get("/health", response_model=Dict[str, Any])
async def get_health() -> Dict[str, Any]:
    """
    Liveness check.

    Open breakers are reported but never make the probe unhealthy.

    Returns:
        Dict[str, Any]: Service identity, timestamp and circuit breaker states
    """
    breakers = get_circuit_breaker_stats()
    return {
        "status": "ok",
        "service": settings.SERVICE_NAME,
        "version": __version__,
        "environment": settings.APP_ENV,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "degraded": any(stats["state"] != "closed" for stats in breakers.values()),
        "circuit_breakers": breakers,
    }
