# =============================================================================
# File: tests/fakes/fake_repositories.py
# Description: In-memory record, projection and fallback stores
# Pattern: Ports & Adapters - Fake/Stub adapter
# =============================================================================

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Dict, List, Optional, Tuple

from telemetry_service.common.exceptions.exceptions import DatabaseUnavailableError
from telemetry_service.telemetry.exceptions import DuplicateTelemetryError
from telemetry_service.telemetry.read_models import DeviceProjection, FallbackEvent, TelemetryReading


class FakeTelemetryStore:
    """TelemetryStorePort with the (device_id, timestamp) uniqueness constraint."""

    def __init__(self):
        self.readings: Dict[Tuple[int, datetime], TelemetryReading] = {}
        # Simulates a concurrent writer that wins between exists() and insert()
        self.hide_from_exists = False
        self.unavailable = False

    async def exists(self, device_id: int, timestamp: datetime) -> bool:
        self._check_available()
        if self.hide_from_exists:
            return False
        return (device_id, timestamp) in self.readings

    async def insert(self, reading: TelemetryReading) -> None:
        self._check_available()
        key = (reading.device_id, reading.timestamp)
        if key in self.readings:
            raise DuplicateTelemetryError(reading.device_id, reading.timestamp)
        self.readings[key] = reading

    def _check_available(self) -> None:
        if self.unavailable:
            raise DatabaseUnavailableError("connection refused")


class FakeDeviceProjectionStore:
    """DeviceProjectionPort whose upsert only ever moves latest_timestamp forward."""

    def __init__(self):
        self.rows: Dict[int, DeviceProjection] = {}
        self.upserts = 0
        # Number of upcoming get() calls that raise
        self.failures_remaining = 0

    async def get(self, device_id: int) -> Optional[DeviceProjection]:
        if self.failures_remaining > 0:
            self.failures_remaining -= 1
            raise DatabaseUnavailableError("projection store unavailable")
        return self.rows.get(device_id)

    async def upsert(self, projection: DeviceProjection) -> bool:
        current = self.rows.get(projection.device_id)
        if current is not None and current.latest_timestamp >= projection.latest_timestamp:
            return False
        self.rows[projection.device_id] = projection
        self.upserts += 1
        return True

    async def list_all(self) -> List[DeviceProjection]:
        return list(self.rows.values())


class FakeFallbackStore:
    """FallbackStorePort keyed by event_id."""

    def __init__(self):
        self.events: Dict[uuid.UUID, FallbackEvent] = {}
        self.fail_inserts = False
        self.fail_deletes = False

    async def insert(self, event: FallbackEvent) -> None:
        if self.fail_inserts:
            raise DatabaseUnavailableError("fallback store unavailable")
        self.events.setdefault(event.event_id, event)

    async def list_all_ordered_by_failure_time(self) -> List[FallbackEvent]:
        return sorted(self.events.values(), key=lambda e: e.failed_at)

    async def delete_by_id(self, event_id: uuid.UUID) -> bool:
        if self.fail_deletes:
            raise DatabaseUnavailableError("fallback store unavailable")
        return self.events.pop(event_id, None) is not None

    async def count(self) -> int:
        return len(self.events)


class FakeUnitOfWork:
    """
    Snapshot/restore transaction over a FakeTelemetryStore: an exception
    inside the block rolls the readings back.
    """

    def __init__(self, telemetry_store: FakeTelemetryStore):
        self._store = telemetry_store
        self.commits = 0
        self.rollbacks = 0

    @asynccontextmanager
    async def __call__(self) -> AsyncIterator[None]:
        snapshot = dict(self._store.readings)
        try:
            yield None
        except BaseException:
            self._store.readings = snapshot
            self.rollbacks += 1
            raise
        self.commits += 1
