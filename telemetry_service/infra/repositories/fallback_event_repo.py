# =============================================================================
# File: telemetry_service/infra/repositories/fallback_event_repo.py
# Description: Durable staging for events the stream did not accept
# =============================================================================

from __future__ import annotations

import uuid
from typing import List

from telemetry_service.infra.persistence import pg_client
from telemetry_service.telemetry.read_models import FallbackEvent


class FallbackEventRepo:

    @staticmethod
    async def insert(event: FallbackEvent) -> None:
        # A second failure for the same event keeps the first failure time
        await pg_client.execute(
            """
            INSERT INTO fallback_events (event_id, device_id, measurement, measured_at, failed_at)
            VALUES ($1, $2, $3, $4, $5)
            ON CONFLICT (event_id) DO NOTHING
            """,
            event.event_id, event.device_id, event.measurement, event.timestamp, event.failed_at
        )

    @staticmethod
    async def list_all_ordered_by_failure_time() -> List[FallbackEvent]:
        rows = await pg_client.fetch(
            """
            SELECT event_id, device_id, measurement, measured_at, failed_at
            FROM fallback_events
            ORDER BY failed_at ASC, event_id ASC
            """
        )
        return [
            FallbackEvent(
                event_id=row["event_id"],
                device_id=row["device_id"],
                measurement=row["measurement"],
                timestamp=row["measured_at"],
                failed_at=row["failed_at"],
            )
            for row in rows
        ]

    @staticmethod
    async def delete_by_id(event_id: uuid.UUID) -> bool:
        status = await pg_client.execute(
            "DELETE FROM fallback_events WHERE event_id = $1",
            event_id
        )
        # asyncpg returns the command tag, e.g. "DELETE 1"
        return status.split()[-1] != "0"

    @staticmethod
    async def count() -> int:
        return await pg_client.fetchval("SELECT COUNT(*) FROM fallback_events")
