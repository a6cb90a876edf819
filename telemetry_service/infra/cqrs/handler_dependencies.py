"""
Handler Dependencies - Telemetry Service

Common dependencies container for command and query handlers.

Architecture: Ports & Adapters
- Ports are defined in the domain: telemetry_service/telemetry/ports/
- Adapters implement ports: telemetry_service/infra/...
- Dependencies are typed with ports, so tests can inject fakes
"""

from dataclasses import dataclass
from typing import Any, AsyncContextManager, Callable

from telemetry_service.infra.metrics.telemetry_metrics import TelemetryMetrics
from telemetry_service.telemetry.ports.event_publisher_port import EventPublisherPort
from telemetry_service.telemetry.ports.telemetry_store_port import DeviceProjectionPort, TelemetryStorePort

# Opens one atomic unit of work (pg_client.transaction in production)
UnitOfWork = Callable[[], AsyncContextManager[Any]]


@dataclass
class HandlerDependencies:
    """Container for handler dependencies, built once at application startup."""

    telemetry_repo: TelemetryStorePort
    projection_repo: DeviceProjectionPort
    publisher: EventPublisherPort
    unit_of_work: UnitOfWork
    metrics: TelemetryMetrics
