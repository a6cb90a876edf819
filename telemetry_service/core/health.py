# =============================================================================
# File: telemetry_service/core/health.py
# Description: Health check endpoints for the application
# =============================================================================

import logging
from datetime import datetime, timezone
from typing import Dict, Any

from fastapi.responses import JSONResponse
from starlette import status

from telemetry_service.core import __version__
from telemetry_service.core.app_state import get_start_time
from telemetry_service.core.fastapi_types import FastAPI
from telemetry_service.infra.persistence import pg_client

logger = logging.getLogger("telemetry.health")


def register_health_endpoints(app: FastAPI) -> None:
    """Register health check endpoints directly on the app"""

    @app.get("/health", tags=["System"])
    async def health_check() -> JSONResponse:
        """PostgreSQL and event stream checks; 503 when either is down"""
        health_data = await get_health_status(app)
        status_code = (
            status.HTTP_200_OK if health_data["status"] == "healthy"
            else status.HTTP_503_SERVICE_UNAVAILABLE
        )
        return JSONResponse(status_code=status_code, content=health_data)

    @app.get("/health/live", tags=["System"])
    async def liveness() -> Dict[str, Any]:
        """Process is up; no dependency checks"""
        return {"status": "alive", "timestamp": datetime.now(timezone.utc).isoformat()}


async def get_health_status(app: FastAPI) -> Dict[str, Any]:
    """Collect dependency checks into one report"""

    database = await pg_client.health_check()
    stream = await get_stream_status(app)

    healthy = database.get("status") == "healthy" and stream.get("status") == "healthy"
    if not healthy:
        logger.warning(f"Health check degraded: database={database.get('status')}, stream={stream.get('status')}")

    circuit_breaker = getattr(app.state, 'circuit_breaker', None)
    started = get_start_time()

    return {
        "status": "healthy" if healthy else "unhealthy",
        "version": __version__,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime_seconds": round((datetime.now(timezone.utc) - started).total_seconds(), 1),
        "checks": {
            "database": database,
            "event_stream": stream,
        },
        "circuit_breaker": circuit_breaker.state.name if circuit_breaker else None,
    }


async def get_stream_status(app: FastAPI) -> Dict[str, Any]:
    transport = getattr(app.state, 'transport', None)
    if transport is None:
        return {"status": "unhealthy", "error": "event stream not initialized"}

    result = await transport.health_check()
    return {
        "status": "healthy" if result.is_healthy else "unhealthy",
        "details": result.details,
    }
