# =============================================================================
# File: telemetry_service/telemetry/command_handlers/telemetry_handlers.py
# Description: Idempotent ingestion of device readings
# =============================================================================

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Callable, Optional

from pydantic import BaseModel

from telemetry_service.common.base.base_model import ensure_utc, utc_now
from telemetry_service.common.exceptions.exceptions import ValidationError
from telemetry_service.config.logging_config import get_logger
from telemetry_service.infra.cqrs.command_bus import ICommandHandler
from telemetry_service.telemetry.commands import RecordTelemetryCommand
from telemetry_service.telemetry.events import TelemetryRecorded
from telemetry_service.telemetry.exceptions import DuplicateTelemetryError
from telemetry_service.telemetry.read_models import TelemetryReading

if TYPE_CHECKING:
    from telemetry_service.infra.cqrs.handler_dependencies import HandlerDependencies

log = get_logger("telemetry.command_handlers")


class RecordTelemetryResult(BaseModel):
    duplicate: bool
    event_id: Optional[uuid.UUID] = None


# -----------------------------------------------------------------------------
# RecordTelemetryHandler
# -----------------------------------------------------------------------------
class RecordTelemetryHandler(ICommandHandler):
    """
    Validates a reading, records it once and hands the event to the publisher.

    The existence check, the insert and the publish run in one unit of work.
    A reading that is already recorded is a successful duplicate: nothing is
    stored or published again. The unique constraint on (device_id, timestamp)
    settles races between two identical concurrent writes the same way.
    """

    def __init__(self, deps: 'HandlerDependencies', clock: Callable[[], datetime] = utc_now):
        self._telemetry_repo = deps.telemetry_repo
        self._publisher = deps.publisher
        self._unit_of_work = deps.unit_of_work
        self._metrics = deps.metrics
        self._clock = clock

    async def handle(self, command: RecordTelemetryCommand) -> RecordTelemetryResult:
        # Every submission counts, duplicates and rejected ones included
        self._metrics.record_received()
        reading = self._validate(command)

        with self._metrics.time_operation("record_telemetry"):
            try:
                async with self._unit_of_work():
                    if await self._telemetry_repo.exists(reading.device_id, reading.timestamp):
                        return self._duplicate(reading)

                    await self._telemetry_repo.insert(reading)

                    event = TelemetryRecorded(
                        device_id=reading.device_id,
                        measurement=reading.measurement,
                        timestamp=reading.timestamp,
                    )
                    await self._publisher.publish(event)

            except DuplicateTelemetryError:
                return self._duplicate(reading)

        log.info(
            f"Telemetry recorded for device {reading.device_id} at {reading.timestamp.isoformat()} "
            f"(event {event.event_id})"
        )
        return RecordTelemetryResult(duplicate=False, event_id=event.event_id)

    def _validate(self, command: RecordTelemetryCommand) -> TelemetryReading:
        if command.device_id is None:
            raise ValidationError("deviceId is required")
        if command.measurement is None:
            raise ValidationError("measurement is required")
        if command.timestamp is None:
            raise ValidationError("date is required")

        timestamp = ensure_utc(command.timestamp)
        if timestamp > self._clock():
            raise ValidationError("date cannot be in the future")

        return TelemetryReading(
            device_id=command.device_id,
            measurement=command.measurement,
            timestamp=timestamp,
        )

    def _duplicate(self, reading: TelemetryReading) -> RecordTelemetryResult:
        self._metrics.record_duplicate()
        log.info(
            f"Duplicate telemetry ignored for device {reading.device_id} at {reading.timestamp.isoformat()}"
        )
        return RecordTelemetryResult(duplicate=True)
