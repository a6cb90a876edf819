"""
Unit tests for DeadLetterService (list and reprocess).
"""

from datetime import datetime

import pytest

from telemetry_service.common.exceptions.exceptions import StreamUnavailableError
from telemetry_service.infra.event_store.dlq_service import DeadLetterService
from tests.fakes.fake_clock import ts
from tests.fakes.fake_event_stream import DLQ_TOPIC, TELEMETRY_TOPIC

READER = "test-dlq-reader"


def dead_letter_headers(retry_count="3", error="projection store timeout"):
    return {
        "retry-count": retry_count,
        "exception-message": error,
        "exception-type": "DatabaseUnavailableError",
        "original-topic": TELEMETRY_TOPIC,
        "original-partition": "0",
        "original-offset": "7",
        "original-timestamp": ts(10).isoformat(),
    }


async def dead_letter(event_stream, key="1", value=None, **header_overrides):
    payload = value if value is not None else {"event_id": f"evt-{key}", "device_id": int(key)}
    await event_stream.publish(DLQ_TOPIC, key, payload, headers=dead_letter_headers(**header_overrides))


@pytest.fixture
def dlq_service(event_stream, metrics):
    return DeadLetterService(
        event_stream,
        dlq_topic=DLQ_TOPIC,
        main_topic=TELEMETRY_TOPIC,
        reader_group=READER,
        metrics=metrics,
    )


class TestListMessages:

    @pytest.mark.asyncio
    async def test_empty(self, dlq_service):
        assert await dlq_service.list_messages() == []

    @pytest.mark.asyncio
    async def test_decodes_payload_and_metadata(self, dlq_service, event_stream):
        await dead_letter(event_stream, key="4")

        [message] = await dlq_service.list_messages()

        assert message.event == {"event_id": "evt-4", "device_id": 4}
        assert message.raw_value is None
        assert message.error_message == "projection store timeout"
        assert message.exception_type == "DatabaseUnavailableError"
        assert message.retry_count == 3
        assert message.original_topic == TELEMETRY_TOPIC
        assert message.original_timestamp == ts(10)
        assert message.offset == 0
        assert isinstance(message.timestamp, datetime)

    @pytest.mark.asyncio
    async def test_undecodable_payload_is_returned_raw(self, dlq_service, event_stream):
        await dead_letter(event_stream, value=b"{not json")

        [message] = await dlq_service.list_messages()

        assert message.event is None
        assert message.raw_value == "{not json"

    @pytest.mark.asyncio
    async def test_listing_does_not_consume(self, dlq_service, event_stream):
        await dead_letter(event_stream)

        await dlq_service.list_messages()

        assert len(await dlq_service.list_messages()) == 1


class TestReprocess:

    @pytest.mark.asyncio
    async def test_nothing_to_reprocess(self, dlq_service, event_stream):
        assert await dlq_service.reprocess() == 0
        assert event_stream.messages(TELEMETRY_TOPIC) == []

    @pytest.mark.asyncio
    async def test_republishes_and_removes_from_dlq(self, dlq_service, event_stream, metrics):
        await dead_letter(event_stream, key="1")
        await dead_letter(event_stream, key="2")

        assert await dlq_service.reprocess() == 2

        republished = event_stream.messages(TELEMETRY_TOPIC)
        assert sorted(m.key for m in republished) == ["1", "2"]
        assert all(m.headers == {"retry-count": "3"} for m in republished)
        assert await dlq_service.list_messages() == []
        assert metrics.registry.get_sample_value("telemetry_dlq_reprocessed_total") == 2.0

    @pytest.mark.asyncio
    async def test_trace_id_is_carried_over(self, dlq_service, event_stream):
        headers = {**dead_letter_headers(), "trace-id": "req-7f3a"}
        await event_stream.publish(DLQ_TOPIC, "1", {"event_id": "evt-1", "device_id": 1}, headers=headers)

        await dlq_service.reprocess()

        [republished] = event_stream.messages(TELEMETRY_TOPIC)
        assert republished.headers == {"retry-count": "3", "trace-id": "req-7f3a"}

    @pytest.mark.asyncio
    async def test_payload_is_republished_unchanged(self, dlq_service, event_stream):
        await dead_letter(event_stream, key="1")
        [original] = event_stream.messages(DLQ_TOPIC)

        await dlq_service.reprocess()

        [republished] = event_stream.messages(TELEMETRY_TOPIC)
        assert republished.value == original.value

    @pytest.mark.asyncio
    async def test_first_failure_stops_its_partition(self, dlq_service, event_stream):
        # Same key: one partition, offsets 0, 1, 2
        for retry_count in ("3", "4", "5"):
            await dead_letter(event_stream, key="1", retry_count=retry_count)
        partition = event_stream.partition_for("1", DLQ_TOPIC)

        stream_publish = event_stream.publish
        attempts = []

        async def fail_second_republish(topic, key, value, headers=None, timeout=None):
            if topic == TELEMETRY_TOPIC:
                attempts.append(key)
                if len(attempts) == 2:
                    raise StreamUnavailableError("leader not available")
            await stream_publish(topic, key, value, headers=headers, timeout=timeout)

        event_stream.publish = fail_second_republish

        assert await dlq_service.reprocess() == 1

        # Offset 2 is never attempted once offset 1 failed
        assert len(attempts) == 2
        assert event_stream.committed(DLQ_TOPIC, READER, partition) == 1
        remaining = await dlq_service.list_messages()
        assert [m.retry_count for m in remaining] == [4, 5]

    @pytest.mark.asyncio
    async def test_other_partitions_continue_after_failure(self, dlq_service, event_stream):
        keys = ["1", "2", "3", "4", "5", "6"]
        by_partition = {}
        for key in keys:
            by_partition.setdefault(event_stream.partition_for(key, DLQ_TOPIC), key)
        assert len(by_partition) >= 2
        for key in by_partition.values():
            await dead_letter(event_stream, key=key)

        # The very first re-publish fails; every other partition still drains
        event_stream.configure_failure(topic=TELEMETRY_TOPIC, times=1)

        assert await dlq_service.reprocess() == len(by_partition) - 1
        assert len(await dlq_service.list_messages()) == 1

    @pytest.mark.asyncio
    async def test_reprocess_twice_is_idempotent_on_dlq(self, dlq_service, event_stream):
        await dead_letter(event_stream, key="1")

        assert await dlq_service.reprocess() == 1
        assert await dlq_service.reprocess() == 0
        assert len(event_stream.messages(TELEMETRY_TOPIC)) == 1
