# =============================================================================
# File: telemetry_service/telemetry/read_models.py
# Description: Telemetry records, projection rows and recovery read models
# =============================================================================

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict

from telemetry_service.telemetry.events import TelemetryRecorded


class TelemetryReading(BaseModel):
    """Write-side record (PostgreSQL table: telemetry). Never updated."""
    model_config = ConfigDict(frozen=True)

    device_id: int
    measurement: Decimal
    timestamp: datetime


class DeviceProjection(BaseModel):
    """Latest reading per device (PostgreSQL table: device_projection)"""
    device_id: int
    latest_measurement: Decimal
    latest_timestamp: datetime
    updated_at: datetime

    def is_superseded_by(self, timestamp: datetime) -> bool:
        """Only a strictly newer reading may replace the stored one."""
        return timestamp > self.latest_timestamp


class FallbackEvent(BaseModel):
    """An event parked in the fallback store (PostgreSQL table: fallback_events)"""
    event_id: uuid.UUID
    device_id: int
    measurement: Decimal
    timestamp: datetime
    failed_at: datetime

    @classmethod
    def from_event(cls, event: TelemetryRecorded, failed_at: datetime) -> 'FallbackEvent':
        return cls(
            event_id=event.event_id,
            device_id=event.device_id,
            measurement=event.measurement,
            timestamp=event.timestamp,
            failed_at=failed_at,
        )

    def to_event(self) -> TelemetryRecorded:
        """Rebuild the original event; recorded_at becomes the failure time."""
        return TelemetryRecorded(
            event_id=self.event_id,
            device_id=self.device_id,
            measurement=self.measurement,
            timestamp=self.timestamp,
            recorded_at=self.failed_at,
        )


class DeadLetterMessage(BaseModel):
    """A message currently parked on the dead-letter topic"""
    event: Optional[Dict[str, Any]] = None
    # Set instead of `event` when the payload is not valid JSON
    raw_value: Optional[str] = None
    error_message: Optional[str] = None
    exception_type: Optional[str] = None
    retry_count: int = 0
    timestamp: Optional[datetime] = None
    original_topic: Optional[str] = None
    original_timestamp: Optional[datetime] = None
    partition: int
    offset: int
