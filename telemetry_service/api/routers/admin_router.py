# =============================================================================
# File: telemetry_service/api/routers/admin_router.py
# Description: Operator endpoints: fallback replay, dead letters, breaker state
# =============================================================================

from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends, Request, status

from telemetry_service.api.dependencies.state_deps import (
    get_circuit_breaker,
    get_dlq_service,
    get_fallback_replay_service,
)
from telemetry_service.api.models.telemetry_api_models import (
    CircuitBreakerStatusResponse,
    DlqMessageResponse,
    DlqReprocessResponse,
    FallbackReplayResponse,
)
from telemetry_service.infra.event_store.dlq_service import DeadLetterService
from telemetry_service.infra.event_store.fallback_replay_service import FallbackReplayService
from telemetry_service.infra.reliability.circuit_breaker import CircuitBreaker

log = logging.getLogger("telemetry.api.admin")

router = APIRouter(prefix="/api/v1/admin", tags=["Admin"])


# =============================================================================
# Fallback Store
# =============================================================================

@router.post("/fallback/replay", response_model=FallbackReplayResponse)
async def replay_fallback_events(
    replay_service: FallbackReplayService = Depends(get_fallback_replay_service),
):
    """
    Re-publish events parked while the stream was unavailable.

    Does nothing unless the circuit breaker is CLOSED.
    """
    log.info("Received request to replay fallback events")
    replayed = await replay_service.replay()

    message = (
        f"Successfully replayed {replayed} events" if replayed > 0
        else "No fallback events to replay"
    )
    return FallbackReplayResponse(message=message, replayed_count=replayed)


# =============================================================================
# Dead Letter Topic
# =============================================================================

@router.get("/dlq", response_model=List[DlqMessageResponse])
async def list_dlq_messages(dlq_service: DeadLetterService = Depends(get_dlq_service)):
    """Everything currently dead-lettered; reading does not remove anything"""
    messages = await dlq_service.list_messages()
    log.info(f"Listed {len(messages)} dead-lettered messages")
    return [DlqMessageResponse.from_dead_letter(m) for m in messages]


@router.post(
    "/dlq/reprocess",
    response_model=DlqReprocessResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def reprocess_dlq_messages(dlq_service: DeadLetterService = Depends(get_dlq_service)):
    """Re-publish dead letters onto the main topic"""
    log.info("Received request to reprocess DLQ messages")
    reprocessed = await dlq_service.reprocess()

    message = (
        f"Successfully reprocessed {reprocessed} messages from DLQ" if reprocessed > 0
        else "No messages to reprocess in DLQ"
    )
    return DlqReprocessResponse(message=message, reprocessed_count=reprocessed)


# =============================================================================
# Circuit Breaker
# =============================================================================

@router.get("/circuit-breaker", response_model=CircuitBreakerStatusResponse)
async def get_circuit_breaker_status(
    request: Request,
    circuit_breaker: CircuitBreaker = Depends(get_circuit_breaker),
):
    """Breaker snapshot plus the number of events waiting in the fallback store"""
    snapshot = await circuit_breaker.get_state()

    fallback_store = getattr(request.app.state, "fallback_store", None)
    if fallback_store is not None:
        snapshot["pending_fallback_events"] = await fallback_store.count()

    return CircuitBreakerStatusResponse(**snapshot)
