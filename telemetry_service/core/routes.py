# =============================================================================
# File: telemetry_service/core/routes.py
# Description: Route registration for FastAPI application
# =============================================================================

import logging
from telemetry_service.core.fastapi_types import FastAPI

from telemetry_service.api.routers.telemetry_router import router as telemetry_router
from telemetry_service.api.routers.device_router import router as device_router
from telemetry_service.api.routers.admin_router import router as admin_router
from telemetry_service.api.routers.metrics_router import router as metrics_router

from telemetry_service.core.health import register_health_endpoints

logger = logging.getLogger("telemetry.routes")


def setup_routes(app: FastAPI) -> None:
    """Register all routers with the FastAPI application"""

    app.include_router(telemetry_router)
    app.include_router(device_router)
    app.include_router(admin_router)
    app.include_router(metrics_router)

    register_health_endpoints(app)

    logger.info("Routers registered")
