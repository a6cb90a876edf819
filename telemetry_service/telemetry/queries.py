# =============================================================================
# File: telemetry_service/telemetry/queries.py
# Description: Telemetry domain queries
# =============================================================================

from telemetry_service.infra.cqrs.query_bus import Query


class GetDevicesQuery(Query):
    """Latest reading of every known device, ordered by device id"""
    pass
