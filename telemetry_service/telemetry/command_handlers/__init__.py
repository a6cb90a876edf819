# =============================================================================
# File: telemetry_service/telemetry/command_handlers/__init__.py
# Description: Telemetry command handlers package
# =============================================================================

from telemetry_service.telemetry.command_handlers.telemetry_handlers import (
    RecordTelemetryHandler,
    RecordTelemetryResult,
)

__all__ = [
    "RecordTelemetryHandler",
    "RecordTelemetryResult",
]
