# =============================================================================
# File: telemetry_service/telemetry/projectors.py
# Description: Folds TelemetryRecorded events into the device projection
# =============================================================================

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from telemetry_service.common.base.base_model import ensure_utc, utc_now
from telemetry_service.config.logging_config import get_logger
from telemetry_service.infra.metrics.telemetry_metrics import TelemetryMetrics
from telemetry_service.telemetry.events import TelemetryRecorded
from telemetry_service.telemetry.ports.telemetry_store_port import DeviceProjectionPort
from telemetry_service.telemetry.read_models import DeviceProjection

log = get_logger("telemetry.projector")


class ProjectionOutcome(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    OUT_OF_ORDER = "out_of_order"


class DeviceProjector:
    """
    Keeps one row per device holding its newest reading.

    latest_timestamp only moves forward: an event at the same or an older
    timestamp is counted as out-of-order and leaves the row as it is. That
    makes redelivery of any event a no-op, so the consumer can acknowledge
    after this returns and rely on at-least-once delivery.
    """

    def __init__(
            self,
            projection_repo: DeviceProjectionPort,
            metrics: TelemetryMetrics,
            clock: Callable[[], datetime] = utc_now,
    ):
        self._projection_repo = projection_repo
        self._metrics = metrics
        self._clock = clock

    async def on_telemetry_recorded(self, event: TelemetryRecorded) -> ProjectionOutcome:
        timestamp = ensure_utc(event.timestamp)

        with self._metrics.time_operation("project_telemetry"):
            current = await self._projection_repo.get(event.device_id)

            if current is not None and not current.is_superseded_by(timestamp):
                return self._out_of_order(event, timestamp, current.latest_timestamp)

            written = await self._projection_repo.upsert(DeviceProjection(
                device_id=event.device_id,
                latest_measurement=event.measurement,
                latest_timestamp=timestamp,
                updated_at=self._clock(),
            ))

        if not written:
            # A newer row landed between the read and the write
            return self._out_of_order(event, timestamp, None)

        outcome = ProjectionOutcome.CREATED if current is None else ProjectionOutcome.UPDATED
        log.debug(
            f"Projection {outcome.value} for device {event.device_id}: "
            f"{event.measurement} at {timestamp.isoformat()}"
        )
        return outcome

    def _out_of_order(
            self,
            event: TelemetryRecorded,
            timestamp: datetime,
            latest: Optional[datetime],
    ) -> ProjectionOutcome:
        self._metrics.record_out_of_order()
        stored = latest.isoformat() if latest is not None else "a newer reading"
        log.warning(
            f"Out-of-order event {event.event_id} for device {event.device_id}: "
            f"{timestamp.isoformat()} is not newer than {stored}; projection unchanged"
        )
        return ProjectionOutcome.OUT_OF_ORDER
