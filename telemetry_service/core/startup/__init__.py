# =============================================================================
# File: telemetry_service/core/startup/__init__.py
# Description: Startup module exports
# =============================================================================

from telemetry_service.core.startup.infrastructure import (
    initialize_database,
    initialize_event_stream,
)
from telemetry_service.core.startup.services import initialize_services
from telemetry_service.core.startup.cqrs import initialize_cqrs_and_handlers

__all__ = [
    "initialize_database",
    "initialize_event_stream",
    "initialize_services",
    "initialize_cqrs_and_handlers",
]
