# =============================================================================
# File: telemetry_service/core/lifespan.py
# Description: Application lifespan management (startup/shutdown)
# =============================================================================

import asyncio
import logging
from contextlib import asynccontextmanager
from telemetry_service.core.fastapi_types import FastAPI

from telemetry_service.core import __version__
from telemetry_service.core.app_state import AppState
from telemetry_service.core.background_tasks import start_background_tasks, stop_background_tasks
from telemetry_service.core.startup import (
    initialize_database,
    initialize_event_stream,
    initialize_services,
    initialize_cqrs_and_handlers,
)
from telemetry_service.core.shutdown import shutdown_all_services
from telemetry_service.config.service_config import get_service_config

logger = logging.getLogger("telemetry.lifespan")


# =============================================================================
# LIFESPAN (Startup/Shutdown)
# =============================================================================
@asynccontextmanager
async def lifespan(app_instance: FastAPI):
    """Application lifespan manager with structured initialization"""

    logger.info(f"Telemetry Service {__version__} starting up...")

    app_instance.state = AppState()
    app_instance.state.service_config = get_service_config()

    try:
        # Phase 1: Core Infrastructure
        logger.info("Phase 1: Initializing PostgreSQL and event stream...")
        await initialize_database(app_instance)
        await initialize_event_stream(app_instance)

        # Phase 2: Publisher and recovery services
        logger.info("Phase 2: Initializing services...")
        await initialize_services(app_instance)

        # Phase 3: CQRS
        logger.info("Phase 3: Initializing CQRS...")
        await initialize_cqrs_and_handlers(app_instance)

        # Phase 4: Background Tasks
        logger.info("Phase 4: Starting background tasks...")
        await start_background_tasks(app_instance)

        logger.info("=" * 60)
        logger.info(f"Telemetry Service v{__version__} ready to serve requests")
        logger.info("=" * 60)

        yield

    except Exception as startup_error:
        logger.error(f"Critical error during startup: {startup_error}", exc_info=True)
        raise

    finally:
        logger.info(f"Telemetry Service v{__version__} shutting down...")
        try:
            async with asyncio.timeout(30.0):
                await stop_background_tasks(app_instance)
                await shutdown_all_services(app_instance)
            logger.info("Telemetry Service stopped gracefully")
        except TimeoutError:
            logger.error("Shutdown timed out after 30s, forcing exit")
