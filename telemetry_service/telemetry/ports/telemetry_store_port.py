# =============================================================================
# File: telemetry_service/telemetry/ports/telemetry_store_port.py
# Description: Port interfaces for the record, projection and fallback stores
# Pattern: Hexagonal Architecture / Ports & Adapters
# =============================================================================

from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Optional, Protocol, runtime_checkable

from telemetry_service.telemetry.read_models import DeviceProjection, FallbackEvent, TelemetryReading


@runtime_checkable
class TelemetryStorePort(Protocol):
    """
    Port: Record Store

    Implemented by: TelemetryRepo (telemetry_service/infra/repositories/telemetry_repo.py)

    Append-only readings with a uniqueness constraint on (device_id, timestamp).
    """

    async def exists(self, device_id: int, timestamp: datetime) -> bool:
        ...

    async def insert(self, reading: TelemetryReading) -> None:
        """Raises DuplicateTelemetryError when the key is already present."""
        ...


@runtime_checkable
class DeviceProjectionPort(Protocol):
    """
    Port: Projection Store

    Implemented by: DeviceProjectionReadRepo (telemetry_service/infra/read_repos/)
    """

    async def get(self, device_id: int) -> Optional[DeviceProjection]:
        ...

    async def upsert(self, projection: DeviceProjection) -> bool:
        """
        Insert or replace the row for projection.device_id.

        Returns False when the stored row is already at the same or a newer
        timestamp and was left untouched.
        """
        ...

    async def list_all(self) -> List[DeviceProjection]:
        ...


@runtime_checkable
class FallbackStorePort(Protocol):
    """
    Port: Fallback Store

    Implemented by: FallbackEventRepo (telemetry_service/infra/repositories/fallback_event_repo.py)

    Only the resilient publisher inserts; only the replay service deletes.
    """

    async def insert(self, event: FallbackEvent) -> None:
        ...

    async def list_all_ordered_by_failure_time(self) -> List[FallbackEvent]:
        ...

    async def delete_by_id(self, event_id: uuid.UUID) -> bool:
        """Returns False when another replay already removed the row."""
        ...

    async def count(self) -> int:
        """Events still waiting for replay."""
        ...
