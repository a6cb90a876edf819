# =============================================================================
# File: telemetry_service/infra/event_bus/resilient_publisher.py
# Description: Circuit-breaker protected publisher with fallback persistence
# =============================================================================

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from telemetry_service.common.base.base_model import utc_now
from telemetry_service.common.tracing import with_trace_header
from telemetry_service.infra.event_bus.transport_adapter import TransportAdapter
from telemetry_service.infra.metrics.telemetry_metrics import TelemetryMetrics
from telemetry_service.infra.reliability.circuit_breaker import CircuitBreaker, CircuitBreakerOpenError
from telemetry_service.telemetry.events import TelemetryRecorded
from telemetry_service.telemetry.exceptions import FallbackPersistenceError
from telemetry_service.telemetry.ports.telemetry_store_port import FallbackStorePort
from telemetry_service.telemetry.read_models import FallbackEvent

log = logging.getLogger("telemetry.publisher")


class ResilientEventPublisher:
    """
    Publishes TelemetryRecorded events through the shared circuit breaker.

    Every failure path (breaker open, stream error, publish timeout) parks the
    event in the fallback store, so publish() returns normally once the event
    is either on the stream or durably stored. If the fallback write fails as
    well the event would be lost: that is logged as CRITICAL and raised as
    FallbackPersistenceError.
    """

    def __init__(
            self,
            transport: TransportAdapter,
            fallback_store: FallbackStorePort,
            circuit_breaker: CircuitBreaker,
            metrics: TelemetryMetrics,
            topic: str,
            publish_timeout_seconds: float = 10.0,
            clock: Callable[[], datetime] = utc_now,
    ):
        self._transport = transport
        self._fallback_store = fallback_store
        self._circuit_breaker = circuit_breaker
        self._metrics = metrics
        self._topic = topic
        self._publish_timeout = publish_timeout_seconds
        self._clock = clock

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self._circuit_breaker

    async def publish(self, event: TelemetryRecorded) -> None:
        try:
            await self._circuit_breaker.call(self.publish_to_stream, event)
        except CircuitBreakerOpenError as e:
            log.warning(f"Circuit breaker {e.state.name}; storing event {event.event_id} in fallback")
            await self._store_fallback(event, e)
            return
        except Exception as e:
            log.error(f"Publish of event {event.event_id} failed ({type(e).__name__}: {e}); storing in fallback")
            await self._store_fallback(event, e)
            return

        log.debug(f"Published event {event.event_id} for device {event.device_id}")

    async def publish_to_stream(self, event: TelemetryRecorded) -> None:
        """Send straight to the stream, bypassing breaker and fallback. Carries the bound trace id."""
        await self._transport.publish(
            self._topic,
            event.partition_key,
            event.to_dict_for_bus(),
            headers=with_trace_header(),
            timeout=self._publish_timeout,
        )

    async def _store_fallback(self, event: TelemetryRecorded, reason: Optional[Exception]) -> None:
        try:
            await self._fallback_store.insert(FallbackEvent.from_event(event, failed_at=self._clock()))
        except Exception as e:
            self._metrics.record_fallback_store_failure()
            log.critical(
                f"Event {event.event_id} for device {event.device_id} was neither published "
                f"({reason}) nor stored in fallback ({type(e).__name__}: {e}); event may be lost",
                exc_info=True,
            )
            raise FallbackPersistenceError(str(event.event_id), e) from e

        self._metrics.record_fallback_stored()
        log.info(f"Event {event.event_id} stored in fallback for later replay")
