# =============================================================================
# File: telemetry_service/telemetry/query_handlers/device_query_handlers.py
# Description: Query handlers for the device projection
# =============================================================================

from __future__ import annotations

from typing import TYPE_CHECKING, List

from telemetry_service.infra.cqrs.query_bus import IQueryHandler
from telemetry_service.telemetry.queries import GetDevicesQuery
from telemetry_service.telemetry.read_models import DeviceProjection

if TYPE_CHECKING:
    from telemetry_service.infra.cqrs.handler_dependencies import HandlerDependencies


class GetDevicesQueryHandler(IQueryHandler):
    """Handler for the full projection set"""

    def __init__(self, deps: 'HandlerDependencies'):
        self._projection_repo = deps.projection_repo

    async def handle(self, query: GetDevicesQuery) -> List[DeviceProjection]:
        projections = await self._projection_repo.list_all()
        return sorted(projections, key=lambda p: p.device_id)
