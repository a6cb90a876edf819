# =============================================================================
# File: telemetry_service/telemetry/ports/event_publisher_port.py
# Description: Port interface for publishing domain events
# =============================================================================

from __future__ import annotations

from typing import Protocol, runtime_checkable

from telemetry_service.telemetry.events import TelemetryRecorded


@runtime_checkable
class EventPublisherPort(Protocol):
    """
    Port: Event Publisher

    Implemented by: ResilientEventPublisher (telemetry_service/infra/event_bus/resilient_publisher.py)

    publish() absorbs stream failures. The only error it lets through is
    FallbackPersistenceError, raised when the event could not be parked either.
    """

    async def publish(self, event: TelemetryRecorded) -> None:
        ...
