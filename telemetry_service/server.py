# =============================================================================
# File: telemetry_service/server.py
# Description: Main FastAPI application entry point
# =============================================================================

from __future__ import annotations

import os
import logging
from typing import Any, Callable, Optional

from telemetry_service.core.fastapi_types import FastAPI

from telemetry_service.core import __version__
from telemetry_service.core.lifespan import lifespan
from telemetry_service.core.routes import setup_routes
from telemetry_service.core.exceptions import setup_exception_handlers
from telemetry_service.core.middleware import setup_middleware
from telemetry_service.config.logging_config import setup_logging
from telemetry_service.config.service_config import get_service_config

# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================
setup_logging(
    service_name="api",
    log_file=os.getenv("LOG_FILE") if os.getenv("LOG_FILE") else None,
)

logger = logging.getLogger("telemetry.server")


# =============================================================================
# FASTAPI APP
# =============================================================================
def create_app(lifespan_handler: Optional[Callable[[FastAPI], Any]] = lifespan) -> FastAPI:
    """Build the application; tests pass lifespan_handler=None and fill app.state themselves"""
    application = FastAPI(
        title=f"Telemetry Service v{__version__}",
        version=__version__,
        lifespan=lifespan_handler,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    setup_middleware(application)
    setup_routes(application)
    setup_exception_handlers(application)
    return application


app = create_app()

__all__ = ["app", "create_app", "__version__"]

# =============================================================================
# Development entry point
# =============================================================================
if __name__ == "__main__":
    import subprocess

    service_config = get_service_config()
    reload = os.getenv("RELOAD", "false").lower() == "true"

    logger.info(f"Starting Telemetry Service on {service_config.host}:{service_config.port} (reload={reload})")

    cmd = [
        "granian",
        "--interface", "asgi",
        "telemetry_service.server:app",
        "--host", service_config.host,
        "--port", str(service_config.port),
    ]

    if reload:
        cmd.extend([
            "--reload",
            "--reload-paths", "telemetry_service/",
        ])

    subprocess.run(cmd)
