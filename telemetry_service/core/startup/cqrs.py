# =============================================================================
# File: telemetry_service/core/startup/cqrs.py
# Description: CQRS initialization and handler registration
# =============================================================================

import logging
from telemetry_service.core.fastapi_types import FastAPI

from telemetry_service.infra.cqrs.command_bus import CommandBus
from telemetry_service.infra.cqrs.handler_dependencies import HandlerDependencies
from telemetry_service.infra.cqrs.query_bus import QueryBus
from telemetry_service.infra.persistence import pg_client
from telemetry_service.infra.read_repos.device_projection_read_repo import DeviceProjectionReadRepo
from telemetry_service.infra.repositories.telemetry_repo import TelemetryRepo
from telemetry_service.telemetry.command_handlers import RecordTelemetryHandler
from telemetry_service.telemetry.commands import RecordTelemetryCommand
from telemetry_service.telemetry.queries import GetDevicesQuery
from telemetry_service.telemetry.query_handlers import GetDevicesQueryHandler

logger = logging.getLogger("telemetry.startup.cqrs")


def register_handlers(
        command_bus: CommandBus,
        query_bus: QueryBus,
        deps: HandlerDependencies,
) -> None:
    command_bus.register_handler(RecordTelemetryCommand, lambda: RecordTelemetryHandler(deps))
    query_bus.register_handler(GetDevicesQuery, lambda: GetDevicesQueryHandler(deps))


async def initialize_cqrs_and_handlers(app: FastAPI) -> None:
    """
    Buses plus handler registration.
    Requires initialize_services() to have run (publisher, metrics).
    """
    deps = HandlerDependencies(
        telemetry_repo=TelemetryRepo(),
        projection_repo=DeviceProjectionReadRepo(),
        publisher=app.state.publisher,
        unit_of_work=pg_client.transaction,
        metrics=app.state.metrics,
    )

    command_bus = CommandBus()
    query_bus = QueryBus()
    register_handlers(command_bus, query_bus, deps)

    app.state.command_bus = command_bus
    app.state.query_bus = query_bus
    app.state.cqrs_registration_stats = {
        "commands": command_bus.get_handler_info(),
        "queries": query_bus.get_handler_info(),
    }
    logger.info(
        f"CQRS ready: {command_bus.get_handler_info()['total_handlers']} command handlers, "
        f"{query_bus.get_handler_info()['total_handlers']} query handlers"
    )
