# =============================================================================
# File: telemetry_service/telemetry/exceptions.py
# Description: Telemetry domain exceptions
# =============================================================================

from datetime import datetime

from telemetry_service.common.exceptions.exceptions import ConflictError, InfrastructureError


class DuplicateTelemetryError(ConflictError):
    """A reading for (device_id, timestamp) is already recorded"""
    def __init__(self, device_id: int, timestamp: datetime):
        super().__init__(f"Telemetry already recorded for device {device_id} at {timestamp.isoformat()}")
        self.device_id = device_id
        self.timestamp = timestamp


class FallbackPersistenceError(InfrastructureError):
    """An event could be neither published nor written to the fallback store"""
    def __init__(self, event_id: str, cause: Exception):
        super().__init__(f"Event {event_id} could not be published or stored in fallback: {cause}")
        self.event_id = event_id
        self.cause = cause


class DeadLetterPublishError(InfrastructureError):
    """The dead-letter topic rejected a message that exhausted its retries"""
    pass
