# =============================================================================
# File: telemetry_service/telemetry/commands.py
# Description: Telemetry domain commands
# =============================================================================

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import Field

from telemetry_service.infra.cqrs.command_bus import Command


class RecordTelemetryCommand(Command):
    """
    Record one device reading.

    Fields are optional at the model level; presence and the future-timestamp
    rule are checked by the handler so every entry point gets the same errors.
    """
    device_id: Optional[int] = Field(None, description="Device identifier")
    measurement: Optional[Decimal] = Field(None, description="Measured value")
    timestamp: Optional[datetime] = Field(None, description="When the measurement was taken")
