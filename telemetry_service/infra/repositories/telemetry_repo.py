# =============================================================================
# File: telemetry_service/infra/repositories/telemetry_repo.py
# Description: Record store for raw readings (append-only)
# =============================================================================

from __future__ import annotations

from datetime import datetime

import asyncpg

from telemetry_service.config.logging_config import get_logger
from telemetry_service.infra.persistence import pg_client
from telemetry_service.telemetry.exceptions import DuplicateTelemetryError
from telemetry_service.telemetry.read_models import TelemetryReading

log = get_logger("telemetry.repo")


class TelemetryRepo:
    """
    Append-only readings. Calls made inside pg_client.transaction() join it.
    """

    @staticmethod
    async def exists(device_id: int, timestamp: datetime) -> bool:
        return bool(await pg_client.fetchval(
            """
            SELECT EXISTS (
                SELECT 1 FROM telemetry WHERE device_id = $1 AND measured_at = $2
            )
            """,
            device_id, timestamp
        ))

    @staticmethod
    async def insert(reading: TelemetryReading) -> None:
        try:
            await pg_client.execute(
                """
                INSERT INTO telemetry (device_id, measurement, measured_at)
                VALUES ($1, $2, $3)
                """,
                reading.device_id, reading.measurement, reading.timestamp
            )
        except asyncpg.exceptions.UniqueViolationError as e:
            raise DuplicateTelemetryError(reading.device_id, reading.timestamp) from e

