# =============================================================================
# File: tests/fakes/fake_event_stream.py
# Description: In-memory TransportAdapter for unit testing
# Pattern: Ports & Adapters - Fake/Stub adapter
# =============================================================================

from __future__ import annotations

import asyncio
import zlib
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from telemetry_service.common.exceptions.exceptions import StreamUnavailableError
from telemetry_service.infra.event_bus.redpanda_adapter import safe_json_dumps
from telemetry_service.infra.event_bus.topic_manager import TopicSpec
from telemetry_service.infra.event_bus.transport_adapter import (
    HealthCheck,
    MessageHandler,
    StreamMessage,
    TransportAdapter,
)


TELEMETRY_TOPIC = "telemetry.recorded"
DLQ_TOPIC = "telemetry.recorded.dlq"


@dataclass
class PublishFailure:
    """Failure injected into publish(); `remaining=None` fails forever."""
    topic: Optional[str]
    remaining: Optional[int]
    message: str


class FakeEventStream(TransportAdapter):
    """
    Partitioned, offset-addressed log kept in memory.

    Keys map to partitions with crc32, so one key always lands on the same
    partition. Consumer groups only move forward through commit(), which
    mirrors manual acknowledgement on the real broker.

    Usage:
        stream = FakeEventStream(partitions=3)
        await stream.publish("telemetry.recorded", "1", {"device_id": 1})

        # Deliver everything pending once, the way one poll round would
        await stream.drain("telemetry.recorded", "group", handler)

        # Make the next two publishes fail
        stream.configure_failure(times=2)
    """

    def __init__(self, partitions: int = 3):
        self.default_partitions = partitions
        self._logs: Dict[str, List[List[StreamMessage]]] = {}
        self._committed: Dict[tuple, int] = {}
        self._failures: List[PublishFailure] = []
        self._stop_event = asyncio.Event()

        self.published: List[StreamMessage] = []
        self.handler_errors: List[Exception] = []
        self.healthy = True
        self.closed = False

    # -------------------------------------------------------------------------
    # Test configuration
    # -------------------------------------------------------------------------

    def configure_failure(
            self,
            topic: Optional[str] = None,
            times: Optional[int] = None,
            message: str = "broker unavailable",
    ) -> None:
        """Fail publishes to `topic` (any topic when None)."""
        self._failures.append(PublishFailure(topic=topic, remaining=times, message=message))

    def clear_failures(self) -> None:
        self._failures.clear()

    def messages(self, topic: str) -> List[StreamMessage]:
        """Every record ever written to `topic`, ordered by (partition, offset)."""
        return [m for partition in self._logs.get(topic, []) for m in partition]

    def committed(self, topic: str, group_id: str, partition: int) -> int:
        return self._committed.get((topic, group_id, partition), 0)

    def partition_for(self, key: Optional[str], topic: Optional[str] = None) -> int:
        count = len(self._logs[topic]) if topic in self._logs else self.default_partitions
        if key is None:
            return 0
        return zlib.crc32(key.encode("utf-8")) % count

    # -------------------------------------------------------------------------
    # TransportAdapter
    # -------------------------------------------------------------------------

    async def publish(
            self,
            topic: str,
            key: Optional[str],
            value: Union[Dict[str, Any], bytes],
            headers: Optional[Dict[str, str]] = None,
            timeout: Optional[float] = None,
    ) -> None:
        self._check_failure(topic)

        payload = value if isinstance(value, bytes) else safe_json_dumps(value).encode("utf-8")
        partitions = self._topic(topic)
        partition = self.partition_for(key, topic)

        message = StreamMessage(
            topic=topic,
            partition=partition,
            offset=len(partitions[partition]),
            key=key,
            value=payload,
            headers=dict(headers or {}),
            timestamp=datetime.now(timezone.utc),
        )
        partitions[partition].append(message)
        self.published.append(message)

    async def consume(self, topic: str, group_id: str, handler: MessageHandler) -> None:
        self._stop_event.clear()
        while not self._stop_event.is_set():
            await self.drain(topic, group_id, handler)
            await asyncio.sleep(0.01)

    async def drain(self, topic: str, group_id: str, handler: MessageHandler) -> int:
        """
        One delivery round over every partition. A handler error stops that
        partition for this round and leaves the record uncommitted.
        """
        delivered = 0
        for partition, records in enumerate(self._topic(topic)):
            position = self.committed(topic, group_id, partition)
            for message in records[position:]:
                try:
                    await handler(message)
                except Exception as e:
                    self.handler_errors.append(e)
                    break
                self._committed[(topic, group_id, partition)] = message.offset + 1
                delivered += 1
        return delivered

    async def read_pending(self, topic: str, group_id: str) -> List[StreamMessage]:
        pending = []
        for partition, records in enumerate(self._topic(topic)):
            pending.extend(records[self.committed(topic, group_id, partition):])
        return pending

    async def commit(self, topic: str, group_id: str, offsets: Dict[int, int]) -> None:
        for partition, offset in offsets.items():
            self._committed[(topic, group_id, partition)] = offset

    async def ensure_topics(self, specs: List[TopicSpec]) -> Dict[str, str]:
        status = {}
        for spec in specs:
            if spec.name in self._logs:
                status[spec.name] = "exists"
            else:
                self._logs[spec.name] = [[] for _ in range(spec.partitions)]
                status[spec.name] = "created"
        return status

    async def health_check(self) -> HealthCheck:
        return HealthCheck(is_healthy=self.healthy, details={"topics": sorted(self._logs)})

    async def stop(self) -> None:
        self._stop_event.set()

    async def close(self) -> None:
        self._stop_event.set()
        self.closed = True

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _topic(self, topic: str) -> List[List[StreamMessage]]:
        if topic not in self._logs:
            self._logs[topic] = [[] for _ in range(self.default_partitions)]
        return self._logs[topic]

    def _check_failure(self, topic: str) -> None:
        for failure in self._failures:
            if failure.topic is not None and failure.topic != topic:
                continue
            if failure.remaining is None:
                raise StreamUnavailableError(failure.message)
            if failure.remaining > 0:
                failure.remaining -= 1
                raise StreamUnavailableError(failure.message)
