# =============================================================================
# File: telemetry_service/infra/event_bus/transport_adapter.py
# Description: Abstract adapter interface for Redpanda/Kafka durable streams
# =============================================================================
"""
Abstract async transport adapter for the telemetry event stream.

Uses Redpanda/Kafka with:
- Keyed publishes (one device -> one partition -> ordered delivery)
- Consumer groups with manual offset commits (at-least-once)
- String headers as mutable metadata tags on a message
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, NamedTuple, Optional, Union

from telemetry_service.infra.event_bus.topic_manager import TopicSpec


class HealthCheck(NamedTuple):
    """Health check information for transport adapters"""
    is_healthy: bool
    details: Dict[str, Any]


@dataclass(frozen=True)
class StreamMessage:
    """One delivered record with its coordinates on the log."""
    topic: str
    partition: int
    offset: int
    key: Optional[str]
    value: bytes
    headers: Dict[str, str] = field(default_factory=dict)
    timestamp: Optional[datetime] = None

    def json(self) -> Any:
        """Decode the value as UTF-8 JSON (raises ValueError when malformed)."""
        return json.loads(self.value.decode("utf-8"))


MessageHandler = Callable[[StreamMessage], Awaitable[None]]


class TransportAdapter(ABC):
    """
    Abstract base transport adapter for Redpanda/Kafka event delivery.

    IMPORTANT: consume() blocks until stop() or close() is called, or the
    calling task is cancelled.
    """

    @abstractmethod
    async def publish(
            self,
            topic: str,
            key: Optional[str],
            value: Union[Dict[str, Any], bytes],
            headers: Optional[Dict[str, str]] = None,
            timeout: Optional[float] = None,
    ) -> None:
        """
        Publish one record and wait for the broker acknowledgement.
        Dict values are JSON-encoded; bytes are sent unchanged.
        Raises StreamUnavailableError on any failure or when `timeout` expires.
        """

    @abstractmethod
    async def consume(self, topic: str, group_id: str, handler: MessageHandler) -> None:
        """
        Deliver records to `handler`, one sequential lane per partition.

        A record's offset is committed only after `handler` returns. When
        `handler` raises, the partition is rewound to that record, which is
        delivered again on a later poll.
        """

    @abstractmethod
    async def read_pending(self, topic: str, group_id: str) -> List[StreamMessage]:
        """
        Snapshot of every record after the group's committed offsets up to the
        current end of each partition. Does not commit anything.
        """

    @abstractmethod
    async def commit(self, topic: str, group_id: str, offsets: Dict[int, int]) -> None:
        """Commit {partition: next_offset_to_read} for `group_id`."""

    @abstractmethod
    async def ensure_topics(self, specs: List[TopicSpec]) -> Dict[str, str]:
        """Create missing topics; returns {topic: status}."""

    @abstractmethod
    async def stop(self) -> None:
        """Ask every running consume() loop to return."""

    @abstractmethod
    async def close(self) -> None:
        """
        Gracefully shut down the adapter, closing any connections or background tasks.
        """

    async def health_check(self) -> HealthCheck:
        """
        Check the health of the underlying transport connections.
        Default implementation assumes health if no override.
        """
        return HealthCheck(is_healthy=True, details={"status": "default implementation"})
