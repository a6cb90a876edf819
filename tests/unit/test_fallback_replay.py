"""
Unit tests for FallbackReplayService.
"""

import uuid
from datetime import datetime
from decimal import Decimal

import pytest

from telemetry_service.infra.event_store.fallback_replay_service import FallbackReplayService
from telemetry_service.infra.reliability.circuit_breaker import CircuitState
from telemetry_service.telemetry.events import TelemetryRecorded
from telemetry_service.telemetry.read_models import FallbackEvent
from tests.fakes.fake_clock import ts
from tests.fakes.fake_event_stream import TELEMETRY_TOPIC


def park(fallback_store, device_id, failed_at):
    record = FallbackEvent(
        event_id=uuid.uuid4(),
        device_id=device_id,
        measurement=Decimal("10.50"),
        timestamp=ts(10),
        failed_at=failed_at,
    )
    fallback_store.events[record.event_id] = record
    return record


@pytest.fixture
def replay_service(fallback_store, publisher, circuit_breaker, metrics):
    return FallbackReplayService(fallback_store, publisher, circuit_breaker, metrics)


class TestReplay:

    @pytest.mark.asyncio
    async def test_nothing_to_replay(self, replay_service, event_stream):
        assert await replay_service.replay() == 0
        assert event_stream.published == []

    @pytest.mark.asyncio
    async def test_replays_oldest_failure_first_and_removes_rows(
            self, replay_service, fallback_store, event_stream, metrics):
        newer = park(fallback_store, device_id=2, failed_at=ts(11, 30))
        older = park(fallback_store, device_id=1, failed_at=ts(11, 0))

        assert await replay_service.replay() == 2

        published_ids = [m.json()["event_id"] for m in event_stream.published]
        assert published_ids == [str(older.event_id), str(newer.event_id)]
        assert fallback_store.events == {}
        assert metrics.registry.get_sample_value("telemetry_fallback_replayed_total") == 2.0

    @pytest.mark.asyncio
    async def test_replayed_event_keeps_identity(self, replay_service, fallback_store, event_stream):
        record = park(fallback_store, device_id=5, failed_at=ts(11, 15))

        await replay_service.replay()

        [message] = event_stream.messages(TELEMETRY_TOPIC)
        payload = message.json()
        assert message.key == "5"
        assert payload["event_id"] == str(record.event_id)
        assert payload["device_id"] == 5
        assert datetime.fromisoformat(payload["timestamp"]) == ts(10)
        assert datetime.fromisoformat(payload["recorded_at"]) == ts(11, 15)

    @pytest.mark.asyncio
    async def test_failed_publish_keeps_row_and_continues(self, replay_service, fallback_store, event_stream):
        first = park(fallback_store, device_id=1, failed_at=ts(11, 0))
        second = park(fallback_store, device_id=2, failed_at=ts(11, 1))
        event_stream.configure_failure(times=1)

        assert await replay_service.replay() == 1

        assert list(fallback_store.events) == [first.event_id]
        assert [m.json()["event_id"] for m in event_stream.published] == [str(second.event_id)]

    @pytest.mark.asyncio
    async def test_delete_failure_is_not_fatal(self, replay_service, fallback_store, event_stream):
        park(fallback_store, device_id=1, failed_at=ts(11, 0))
        fallback_store.fail_deletes = True

        assert await replay_service.replay() == 0

        # Published, but still parked; the next run publishes it again
        assert len(event_stream.published) == 1
        assert len(fallback_store.events) == 1


class TestBreakerGate:

    @pytest.mark.asyncio
    async def test_skipped_while_breaker_open(
            self, replay_service, circuit_breaker, publisher, fallback_store, event_stream):
        event_stream.configure_failure()
        for minute in range(10):
            await publisher.publish(
                park(fallback_store, device_id=minute, failed_at=ts(11, minute)).to_event()
            )
        assert circuit_breaker.state == CircuitState.OPEN
        event_stream.clear_failures()
        parked = len(fallback_store.events)

        assert await replay_service.replay() == 0

        assert event_stream.published == []
        assert len(fallback_store.events) == parked

    @pytest.mark.asyncio
    async def test_skipped_while_half_open(
            self, replay_service, circuit_breaker, publisher, fallback_store, event_stream, monotonic_clock):
        event_stream.configure_failure()
        for minute in range(10):
            await publisher.publish(
                park(fallback_store, device_id=minute, failed_at=ts(11, minute)).to_event()
            )
        monotonic_clock.advance(10)
        assert circuit_breaker.state == CircuitState.HALF_OPEN
        event_stream.clear_failures()

        assert await replay_service.replay() == 0
        assert event_stream.published == []

    @pytest.mark.asyncio
    async def test_round_trip_after_recovery(
            self, replay_service, circuit_breaker, publisher, fallback_store, event_stream, monotonic_clock):
        event_stream.configure_failure()
        parked_ids = []
        for minute in range(10):
            record = park(fallback_store, device_id=minute, failed_at=ts(11, minute))
            await publisher.publish(record.to_event())
            parked_ids.append(str(record.event_id))
        assert circuit_breaker.state == CircuitState.OPEN

        # Stream recovers; three trial publishes close the breaker
        event_stream.clear_failures()
        monotonic_clock.advance(10)
        for minute in range(3):
            await publisher.publish(TelemetryRecorded(device_id=99, measurement=Decimal("1.0"), timestamp=ts(11, minute)))
        assert circuit_breaker.state == CircuitState.CLOSED

        await replay_service.replay()

        published_ids = [m.json()["event_id"] for m in event_stream.published]
        assert all(published_ids.count(event_id) == 1 for event_id in parked_ids)
        assert fallback_store.events == {}
