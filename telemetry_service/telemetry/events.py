# =============================================================================
# File: telemetry_service/telemetry/events.py
# Description: Telemetry domain events
# =============================================================================

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal

from telemetry_service.common.base.base_model import BaseEvent


class TelemetryRecorded(BaseEvent):
    """
    Emitted once per accepted reading; keyed by device_id on the stream.

    event_id is fresh per accepted write, so the same reading recorded again
    after a crash may carry a different id.
    """
    event_type: Literal["TelemetryRecorded"] = "TelemetryRecorded"
    device_id: int
    measurement: Decimal
    timestamp: datetime

    @property
    def partition_key(self) -> str:
        return str(self.device_id)
