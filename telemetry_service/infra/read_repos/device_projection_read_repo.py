# =============================================================================
# File: telemetry_service/infra/read_repos/device_projection_read_repo.py
# Description: Read repository for the latest-reading-per-device projection
# =============================================================================

from __future__ import annotations

from typing import List, Optional

from telemetry_service.infra.persistence import pg_client
from telemetry_service.telemetry.read_models import DeviceProjection


def _to_projection(row) -> DeviceProjection:
    return DeviceProjection(
        device_id=row["device_id"],
        latest_measurement=row["latest_measurement"],
        latest_timestamp=row["latest_timestamp"],
        updated_at=row["updated_at"],
    )


class DeviceProjectionReadRepo:
    """
    Projection rows keyed by device_id.

    upsert() never moves latest_timestamp backwards, even when two writers
    race past the projector's own comparison.
    """

    @staticmethod
    async def get(device_id: int) -> Optional[DeviceProjection]:
        row = await pg_client.fetchrow(
            """
            SELECT device_id, latest_measurement, latest_timestamp, updated_at
            FROM device_projection
            WHERE device_id = $1
            """,
            device_id
        )
        return _to_projection(row) if row else None

    @staticmethod
    async def upsert(projection: DeviceProjection) -> bool:
        status = await pg_client.execute(
            """
            INSERT INTO device_projection (device_id, latest_measurement, latest_timestamp, updated_at)
            VALUES ($1, $2, $3, $4)
            ON CONFLICT (device_id) DO UPDATE SET
                latest_measurement = EXCLUDED.latest_measurement,
                latest_timestamp = EXCLUDED.latest_timestamp,
                updated_at = EXCLUDED.updated_at
            WHERE device_projection.latest_timestamp < EXCLUDED.latest_timestamp
            """,
            projection.device_id,
            projection.latest_measurement,
            projection.latest_timestamp,
            projection.updated_at,
        )
        # "INSERT 0 1" when written, "INSERT 0 0" when the guard rejected it
        return status.split()[-1] != "0"

    @staticmethod
    async def list_all() -> List[DeviceProjection]:
        rows = await pg_client.fetch(
            """
            SELECT device_id, latest_measurement, latest_timestamp, updated_at
            FROM device_projection
            ORDER BY device_id
            """
        )
        return [_to_projection(row) for row in rows]
