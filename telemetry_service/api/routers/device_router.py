# =============================================================================
# File: telemetry_service/api/routers/device_router.py
# Description: Device projection endpoint (query side)
# =============================================================================

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends

from telemetry_service.api.dependencies.state_deps import get_query_bus
from telemetry_service.api.models.telemetry_api_models import DeviceResponse
from telemetry_service.infra.cqrs.query_bus import QueryBus
from telemetry_service.telemetry.queries import GetDevicesQuery

router = APIRouter(prefix="/api/v1", tags=["Devices"])


@router.get("/devices", response_model=List[DeviceResponse])
async def get_devices(query_bus: QueryBus = Depends(get_query_bus)):
    """Latest reading of every device, ordered by deviceId"""
    projections = await query_bus.query(GetDevicesQuery())
    return [DeviceResponse.from_projection(p) for p in projections]
