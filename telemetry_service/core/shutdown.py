# =============================================================================
# File: telemetry_service/core/shutdown.py
# Description: Graceful shutdown logic for all services
# =============================================================================

import logging
from telemetry_service.core.fastapi_types import FastAPI

from telemetry_service.common.exceptions.exceptions import InfrastructureError
from telemetry_service.infra.persistence.pg_client import close_db_pool

logger = logging.getLogger("telemetry.shutdown")


async def shutdown_all_services(app: FastAPI) -> None:
    """Shutdown in reverse startup order: event stream, then PostgreSQL"""

    transport = getattr(app.state, 'transport', None)
    if transport is not None:
        try:
            await transport.close()
        except (InfrastructureError, OSError) as e:
            logger.error(f"Error closing event stream adapter: {e}")

    if getattr(app.state, 'db_ready', False):
        await close_db_pool()
        app.state.db_ready = False
        logger.info("PostgreSQL pool closed")
