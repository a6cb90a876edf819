# =============================================================================
# File: telemetry_service/infra/event_store/fallback_replay_service.py
# Description: Drains the fallback store back into the event stream
# =============================================================================

from __future__ import annotations

import asyncio
import logging

from telemetry_service.common.exceptions.exceptions import InfrastructureError, StreamUnavailableError
from telemetry_service.infra.event_bus.resilient_publisher import ResilientEventPublisher
from telemetry_service.infra.metrics.telemetry_metrics import TelemetryMetrics
from telemetry_service.infra.reliability.circuit_breaker import CircuitBreaker, CircuitState
from telemetry_service.telemetry.ports.telemetry_store_port import FallbackStorePort

log = logging.getLogger("telemetry.fallback_replay")


class FallbackReplayService:
    """
    Re-publishes parked events, oldest failure first.

    Runs only while the breaker is CLOSED. Each event is deleted only after
    its publish succeeded; a failed publish leaves the row for the next run
    and the loop moves on. Two overlapping runs may publish the same event
    twice, which the projection tolerates.
    """

    def __init__(
            self,
            fallback_store: FallbackStorePort,
            publisher: ResilientEventPublisher,
            circuit_breaker: CircuitBreaker,
            metrics: TelemetryMetrics,
    ):
        self._fallback_store = fallback_store
        self._publisher = publisher
        self._circuit_breaker = circuit_breaker
        self._metrics = metrics

    async def replay(self) -> int:
        state = self._circuit_breaker.state
        if state != CircuitState.CLOSED:
            log.warning(f"Fallback replay skipped: circuit breaker is {state.name}")
            return 0

        pending = await self._fallback_store.list_all_ordered_by_failure_time()
        if not pending:
            log.debug("Fallback replay: nothing to replay")
            return 0

        replayed = 0
        for record in pending:
            try:
                await self._publisher.publish_to_stream(record.to_event())
            except StreamUnavailableError as e:
                log.warning(f"Replay of event {record.event_id} failed, keeping it: {e}")
                continue

            try:
                deleted = await self._fallback_store.delete_by_id(record.event_id)
            except InfrastructureError as e:
                log.error(f"Event {record.event_id} replayed but not removed from fallback store: {e}")
                continue

            if not deleted:
                log.debug(f"Event {record.event_id} was already removed by another replay")
            replayed += 1

        self._metrics.record_fallback_replayed(replayed)
        log.info(f"Fallback replay complete: {replayed}/{len(pending)} events replayed")
        return replayed

    async def run_periodic(self, interval_seconds: float) -> None:
        """Replay every `interval_seconds` until cancelled."""
        log.info(f"Periodic fallback replay every {interval_seconds:.0f}s")
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                await self.replay()
            except InfrastructureError as e:
                log.error(f"Periodic fallback replay failed: {e}")
