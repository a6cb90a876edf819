# =============================================================================
# File: telemetry_service/api/routers/telemetry_router.py
# Description: Telemetry ingestion endpoint (command side)
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status

from telemetry_service.api.dependencies.state_deps import get_command_bus
from telemetry_service.api.models.telemetry_api_models import TelemetryAcceptedResponse, TelemetryRequest
from telemetry_service.infra.cqrs.command_bus import CommandBus
from telemetry_service.telemetry.commands import RecordTelemetryCommand

log = logging.getLogger("telemetry.api.telemetry")

router = APIRouter(prefix="/api/v1", tags=["Telemetry"])


@router.post(
    "/telemetry",
    response_model=TelemetryAcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def record_telemetry(
    request: TelemetryRequest,
    command_bus: CommandBus = Depends(get_command_bus),
):
    """
    Accept one device reading.

    202 means the reading is durably recorded; the projection catches up
    asynchronously. Re-sending the same deviceId/date is accepted again
    with duplicate=true and has no further effect.
    """
    log.debug(f"Received telemetry: deviceId={request.device_id}, measurement={request.measurement}, date={request.date}")

    result = await command_bus.send(RecordTelemetryCommand(
        device_id=request.device_id,
        measurement=request.measurement,
        timestamp=request.date,
    ))
    return TelemetryAcceptedResponse(duplicate=result.duplicate)
