# =============================================================================
# File: telemetry_service/telemetry/query_handlers/__init__.py
# Description: Telemetry query handlers package
# =============================================================================

from telemetry_service.telemetry.query_handlers.device_query_handlers import GetDevicesQueryHandler

__all__ = [
    "GetDevicesQueryHandler",
]
