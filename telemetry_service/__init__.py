# =============================================================================
# Telemetry Service Main Package - Dynamic Version Loading
# =============================================================================
"""
Telemetry Service - Main Package

Version is loaded from the installed distribution metadata.

Single Source of Truth: pyproject.toml [project] version
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version


def _get_version() -> str:
    """
    Get package version from installed metadata.

    Returns:
        Version string (e.g., "0.3.0"), or a marker when running from a
        source checkout that was never installed.
    """
    try:
        return version("telemetry-service")
    except PackageNotFoundError:
        return "0.0.0-dev"


__version__: str = _get_version()
__description__: str = "Telemetry Service - device readings ingestion with CQRS projections"
__author__: str = "Telemetry Team"

__all__ = [
    "__version__",
    "__description__",
    "__author__",
]
