"""
Unit tests for RedpandaAdapter's consumer side, driven through a fake
AIOKafkaConsumer.

Tests:
- Offsets are committed one record at a time, after the handler returns
- A failing handler rewinds its partition and the record is delivered again
- Commit errors are logged and the consumer keeps polling
- A busy partition is paused without holding up the others
- read_pending() / commit() on the group's offsets
"""

import asyncio

import pytest
from aiokafka.errors import KafkaConnectionError, KafkaError, RequestTimedOutError

from telemetry_service.common.exceptions.exceptions import StreamUnavailableError
from telemetry_service.config.eventbus_config import EventStreamConfig
from telemetry_service.infra.event_bus.redpanda_adapter import RedpandaAdapter
from tests.fakes.fake_kafka_consumer import TOPIC, FakeKafkaConsumer

GROUP = "test-projection"


@pytest.fixture
def adapter_config():
    return EventStreamConfig(telemetry_topic=TOPIC, poll_timeout_ms=5, dlq_read_timeout_ms=1000)


@pytest.fixture
def consumer():
    return FakeKafkaConsumer(partitions=2)


@pytest.fixture
def adapter(adapter_config, consumer, monkeypatch):
    redpanda = RedpandaAdapter(adapter_config)
    monkeypatch.setattr(redpanda, "_new_consumer", lambda group_id, *topics: consumer)
    return redpanda


async def eventually(condition, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not condition():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


def start_consuming(adapter, handler) -> asyncio.Task:
    return asyncio.create_task(adapter.consume(TOPIC, GROUP, handler))


async def stop_consuming(adapter, task) -> None:
    await adapter.stop()
    await asyncio.wait_for(task, timeout=2.0)


# =============================================================================
# consume()
# =============================================================================

class TestConsume:

    @pytest.mark.asyncio
    async def test_commits_each_record_after_its_handler(self, adapter, consumer):
        for i in range(3):
            consumer.append(0, b"%d" % i)
        tp = consumer.tp(0)
        seen = []

        async def handler(message):
            seen.append((message.offset, consumer.committed_offsets.get(tp)))

        task = start_consuming(adapter, handler)
        await eventually(lambda: consumer.committed_offsets.get(tp) == 3)
        await stop_consuming(adapter, task)

        # When record n is handled, only the records before it are committed
        assert seen == [(0, None), (1, 1), (2, 2)]
        assert consumer.commit_calls == [{tp: 1}, {tp: 2}, {tp: 3}]
        assert consumer.stopped

    @pytest.mark.asyncio
    async def test_handler_error_rewinds_and_redelivers(self, adapter, consumer):
        for i in range(3):
            consumer.append(0, b"%d" % i)
        tp = consumer.tp(0)
        deliveries = []

        async def handler(message):
            deliveries.append(message.offset)
            if deliveries == [0, 1]:
                raise RuntimeError("projection store timeout")

        task = start_consuming(adapter, handler)
        await eventually(lambda: consumer.committed_offsets.get(tp) == 3)
        await stop_consuming(adapter, task)

        assert deliveries == [0, 1, 1, 2]
        assert (0, 1) in consumer.seeks
        # The failed delivery never committed
        assert {tp: 2} in consumer.commit_calls
        assert consumer.commit_calls.count({tp: 2}) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [KafkaConnectionError("broker gone"), RequestTimedOutError()],
        ids=["connection", "timeout"],
    )
    async def test_commit_error_keeps_consumer_running(self, adapter, consumer, error):
        consumer.append(0, b"0")
        consumer.append(0, b"1")
        consumer.fail_commits(error)
        tp = consumer.tp(0)
        handled = []

        async def handler(message):
            handled.append(message.offset)

        task = start_consuming(adapter, handler)
        await eventually(lambda: consumer.committed_offsets.get(tp) == 2)

        assert not task.done()
        assert handled == [0, 1]

        # Still polling: a later record is delivered and committed
        consumer.append(0, b"2")
        await eventually(lambda: consumer.committed_offsets.get(tp) == 3)
        assert handled == [0, 1, 2]

        await stop_consuming(adapter, task)
        assert consumer.commit_calls[0] == {tp: 1}

    @pytest.mark.asyncio
    async def test_busy_partition_does_not_hold_up_others(self, adapter, consumer):
        consumer.append(0, b"p0-0")
        consumer.append(1, b"p1-0")
        consumer.append(1, b"p1-1")
        release = asyncio.Event()
        handled = []

        async def handler(message):
            if message.partition == 0:
                # Stands in for a retry backoff on a failing record
                await release.wait()
            handled.append((message.partition, message.offset))

        task = start_consuming(adapter, handler)
        await eventually(lambda: (1, 1) in handled)

        # Records arriving later on the free partition keep flowing
        consumer.append(1, b"p1-2")
        await eventually(lambda: (1, 2) in handled)

        assert (0, 0) not in handled
        assert consumer.is_paused(0)
        assert not consumer.is_paused(1)

        release.set()
        await eventually(lambda: (0, 0) in handled)
        await eventually(lambda: not consumer.is_paused(0))

        await stop_consuming(adapter, task)
        assert consumer.committed_offsets == {consumer.tp(0): 1, consumer.tp(1): 3}

    @pytest.mark.asyncio
    async def test_stop_lets_the_current_record_finish(self, adapter, consumer):
        consumer.append(0, b"0")
        consumer.append(0, b"1")
        started = asyncio.Event()
        release = asyncio.Event()
        handled = []

        async def handler(message):
            started.set()
            await release.wait()
            handled.append(message.offset)

        task = start_consuming(adapter, handler)
        await asyncio.wait_for(started.wait(), timeout=2.0)

        await adapter.stop()
        release.set()
        await asyncio.wait_for(task, timeout=2.0)

        assert handled == [0]
        assert consumer.committed_offsets == {consumer.tp(0): 1}
        # The unhandled record is left for the next owner
        assert (0, 1) in consumer.seeks


# =============================================================================
# read_pending() / commit()
# =============================================================================

class TestGroupOffsets:

    @pytest.fixture(autouse=True)
    def known_partitions(self, adapter, consumer, monkeypatch):
        async def partitions(topic):
            return [consumer.tp(0), consumer.tp(1)]

        monkeypatch.setattr(adapter, "_partitions", partitions)

    @pytest.mark.asyncio
    async def test_read_pending_starts_after_committed_offsets(self, adapter, consumer):
        for i in range(3):
            consumer.append(0, b'{"n": %d}' % i)
        consumer.append(1, b"{}", headers={"retry-count": "3"})
        consumer.set_committed(0, 1)

        pending = await adapter.read_pending(TOPIC, "dlq-reader")

        assert [(m.partition, m.offset) for m in pending] == [(0, 1), (0, 2), (1, 0)]
        assert pending[0].json() == {"n": 1}
        assert pending[2].headers == {"retry-count": "3"}
        assert consumer.commit_calls == []
        assert consumer.stopped

    @pytest.mark.asyncio
    async def test_read_pending_with_nothing_left(self, adapter, consumer):
        consumer.append(0, b"{}")
        consumer.set_committed(0, 1)

        assert await adapter.read_pending(TOPIC, "dlq-reader") == []

    @pytest.mark.asyncio
    async def test_commit_moves_group_offsets(self, adapter, consumer):
        await adapter.commit(TOPIC, "dlq-reader", {0: 2, 1: 1})

        assert consumer.committed_offsets == {consumer.tp(0): 2, consumer.tp(1): 1}

    @pytest.mark.asyncio
    async def test_commit_failure_is_stream_unavailable(self, adapter, consumer):
        consumer.fail_commits(KafkaError("coordinator not available"))

        with pytest.raises(StreamUnavailableError, match="Commit for group dlq-reader"):
            await adapter.commit(TOPIC, "dlq-reader", {0: 2})

        assert consumer.stopped
