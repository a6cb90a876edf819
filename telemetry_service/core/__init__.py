"""
Telemetry Service Core Module
Central location for shared constants and metadata
"""

from telemetry_service import __version__, __description__

from telemetry_service.core.app_state import AppState, get_start_time

__all__ = [
    "__version__",
    "__description__",
    "AppState",
    "get_start_time",
]
