# =============================================================================
# File: telemetry_service/telemetry/ports/__init__.py
# Description: Ports directory for Telemetry domain
# =============================================================================
# EMPTY - use direct imports:
#   from telemetry_service.telemetry.ports.telemetry_store_port import TelemetryStorePort
#   from telemetry_service.telemetry.ports.event_publisher_port import EventPublisherPort
