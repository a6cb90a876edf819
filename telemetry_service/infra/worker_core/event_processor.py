# =============================================================================
# File: telemetry_service/infra/worker_core/event_processor.py
# Description: Projection consumer: decode -> project, wrapped in retry/DLQ
# =============================================================================

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from telemetry_service.config.eventbus_config import EventStreamConfig
from telemetry_service.config.reliability_config import ReliabilityConfigs, RetryConfig
from telemetry_service.infra.event_bus.dead_letter_handler import DeadLetterHandler
from telemetry_service.infra.event_bus.transport_adapter import StreamMessage, TransportAdapter
from telemetry_service.infra.metrics.telemetry_metrics import TelemetryMetrics
from telemetry_service.infra.read_repos.device_projection_read_repo import DeviceProjectionReadRepo
from telemetry_service.telemetry.events import TelemetryRecorded
from telemetry_service.telemetry.projectors import DeviceProjector

log = logging.getLogger("telemetry.event_processor")


class TelemetryEventProcessor:
    """
    Applies one stream record to the projection.

    Malformed payloads raise like any other failure and take the normal
    retry/dead-letter path.
    """

    def __init__(self, projector: DeviceProjector):
        self._projector = projector
        self.processed = 0

    async def __call__(self, message: StreamMessage) -> None:
        event = TelemetryRecorded.model_validate(message.json())
        outcome = await self._projector.on_telemetry_recorded(event)
        self.processed += 1
        log.debug(
            f"{message.topic}[{message.partition}]@{message.offset} -> {outcome.value} "
            f"(device {event.device_id})"
        )


class ProjectionConsumer:
    """Runs the projection pipeline on the telemetry topic until stopped."""

    def __init__(
            self,
            transport: TransportAdapter,
            topic: str,
            group_id: str,
            processor: TelemetryEventProcessor,
            dead_letter_handler: DeadLetterHandler,
    ):
        self._transport = transport
        self._topic = topic
        self._group_id = group_id
        self._processor = processor
        self._handler = dead_letter_handler.wrap(processor)

    async def run(self) -> None:
        log.info(f"Projection consumer starting on '{self._topic}' (group {self._group_id})")
        await self._transport.consume(self._topic, self._group_id, self._handler)
        log.info(f"Projection consumer stopped after {self._processor.processed} events")

    async def stop(self) -> None:
        await self._transport.stop()

    def get_status(self) -> Dict[str, Any]:
        return {
            "topic": self._topic,
            "group_id": self._group_id,
            "processed": self._processor.processed,
        }


def create_projection_consumer(
        transport: TransportAdapter,
        config: EventStreamConfig,
        metrics: TelemetryMetrics,
        retry_config: Optional[RetryConfig] = None,
) -> ProjectionConsumer:
    """Wire projector -> processor -> retry/DLQ wrapper on the telemetry topic."""
    projector = DeviceProjector(DeviceProjectionReadRepo(), metrics)
    dead_letter_handler = DeadLetterHandler(
        transport,
        dlq_topic=config.dlq_topic,
        retry_config=retry_config or ReliabilityConfigs.consumer_retry(),
        metrics=metrics,
        publish_timeout_seconds=config.publish_timeout_seconds,
    )
    return ProjectionConsumer(
        transport,
        topic=config.telemetry_topic,
        group_id=config.consumer_group,
        processor=TelemetryEventProcessor(projector),
        dead_letter_handler=dead_letter_handler,
    )
