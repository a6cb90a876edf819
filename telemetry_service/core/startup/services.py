# =============================================================================
# File: telemetry_service/core/startup/services.py
# Description: Publisher, recovery services and the projection pipeline
# =============================================================================

import logging
from telemetry_service.core.fastapi_types import FastAPI

from telemetry_service.config.reliability_config import ReliabilityConfigs
from telemetry_service.infra.event_bus.resilient_publisher import ResilientEventPublisher
from telemetry_service.infra.event_store.dlq_service import DeadLetterService
from telemetry_service.infra.event_store.fallback_replay_service import FallbackReplayService
from telemetry_service.infra.metrics.telemetry_metrics import get_telemetry_metrics
from telemetry_service.infra.reliability.circuit_breaker import CircuitBreaker
from telemetry_service.infra.repositories.fallback_event_repo import FallbackEventRepo
from telemetry_service.infra.worker_core.event_processor import create_projection_consumer

logger = logging.getLogger("telemetry.startup.services")


async def initialize_services(app: FastAPI) -> None:
    """
    Build the write-side publisher and the operator services.
    Requires initialize_event_stream() to have run.
    """
    stream_config = app.state.stream_config
    transport = app.state.transport

    metrics = get_telemetry_metrics()
    app.state.metrics = metrics

    fallback_store = FallbackEventRepo()
    app.state.fallback_store = fallback_store

    circuit_breaker = CircuitBreaker(ReliabilityConfigs.stream_circuit_breaker())
    app.state.circuit_breaker = circuit_breaker

    app.state.publisher = ResilientEventPublisher(
        transport,
        fallback_store,
        circuit_breaker,
        metrics,
        topic=stream_config.telemetry_topic,
        publish_timeout_seconds=stream_config.publish_timeout_seconds,
    )
    logger.info(f"Resilient publisher ready on '{stream_config.telemetry_topic}'")

    app.state.fallback_replay_service = FallbackReplayService(
        fallback_store,
        app.state.publisher,
        circuit_breaker,
        metrics,
    )

    app.state.dlq_service = DeadLetterService(
        transport,
        dlq_topic=stream_config.dlq_topic,
        main_topic=stream_config.telemetry_topic,
        reader_group=stream_config.dlq_reader_group,
        metrics=metrics,
        publish_timeout_seconds=stream_config.publish_timeout_seconds,
    )
    logger.info("Fallback replay and dead letter services ready")

    if app.state.service_config.embedded_consumer:
        app.state.projection_consumer = create_projection_consumer(transport, stream_config, metrics)
        logger.info("Embedded projection consumer configured")
    else:
        logger.info("Embedded projection consumer disabled; run the projection worker separately")
