# =============================================================================
# File: telemetry_service/core/startup/infrastructure.py
# Description: Core infrastructure initialization (PostgreSQL, event stream)
# =============================================================================

import logging
from telemetry_service.core.fastapi_types import FastAPI

from telemetry_service.config.eventbus_config import get_event_stream_config
from telemetry_service.config.pg_client_config import get_database_config
from telemetry_service.infra.event_bus.redpanda_adapter import RedpandaAdapter
from telemetry_service.infra.event_bus.topic_manager import telemetry_topic_specs
from telemetry_service.infra.persistence.pg_client import init_db_pool, run_schema_from_file

logger = logging.getLogger("telemetry.startup.infrastructure")


async def initialize_database(app: FastAPI) -> None:
    """PostgreSQL pool, then the idempotent schema bootstrap"""
    db_config = get_database_config()

    await init_db_pool(db_config)
    logger.info("PostgreSQL pool initialized.")

    if db_config.apply_schema:
        await run_schema_from_file(db_config.schema_file)
    else:
        logger.info("Schema bootstrap disabled (POSTGRES_APPLY_SCHEMA=false)")

    app.state.db_ready = True


async def initialize_event_stream(app: FastAPI) -> None:
    """Redpanda adapter and topic bootstrap"""
    stream_config = get_event_stream_config()
    app.state.stream_config = stream_config

    transport = RedpandaAdapter(stream_config)
    app.state.transport = transport

    if stream_config.auto_create_topics:
        topics = await transport.ensure_topics(telemetry_topic_specs(stream_config))
        logger.info(f"Event stream topics: {topics}")

    logger.info(f"Event stream adapter ready ({stream_config.bootstrap_servers})")
