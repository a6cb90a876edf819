# =============================================================================
# File: telemetry_service/api/dependencies/state_deps.py
# Description: FastAPI dependencies resolving components from app state
# =============================================================================

from typing import Any

from fastapi import HTTPException, Request

from telemetry_service.config.logging_config import get_logger
from telemetry_service.infra.cqrs.command_bus import CommandBus
from telemetry_service.infra.cqrs.query_bus import QueryBus
from telemetry_service.infra.event_store.dlq_service import DeadLetterService
from telemetry_service.infra.event_store.fallback_replay_service import FallbackReplayService
from telemetry_service.infra.reliability.circuit_breaker import CircuitBreaker

log = get_logger("telemetry.api.dependencies")


def _from_state(request: Request, attribute: str, description: str) -> Any:
    component = getattr(request.app.state, attribute, None)
    if component is None:
        log.error(f"{description} not available - application startup incomplete")
        raise HTTPException(status_code=503, detail=f"{description} unavailable")
    return component


def get_command_bus(request: Request) -> CommandBus:
    """Get command bus from application state"""
    return _from_state(request, "command_bus", "Command bus")


def get_query_bus(request: Request) -> QueryBus:
    """Get query bus from application state"""
    return _from_state(request, "query_bus", "Query bus")


def get_fallback_replay_service(request: Request) -> FallbackReplayService:
    return _from_state(request, "fallback_replay_service", "Fallback replay service")


def get_dlq_service(request: Request) -> DeadLetterService:
    return _from_state(request, "dlq_service", "Dead letter service")


def get_circuit_breaker(request: Request) -> CircuitBreaker:
    return _from_state(request, "circuit_breaker", "Circuit breaker")
