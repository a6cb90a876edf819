# =============================================================================
# File: telemetry_service/infra/event_bus/redpanda_adapter.py
# Description: aiokafka-based transport adapter for Redpanda/Kafka
# =============================================================================

import asyncio
import json
import logging
import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional, Union

from aiokafka import AIOKafkaConsumer, AIOKafkaProducer
from aiokafka.structs import ConsumerRecord, TopicPartition
from aiokafka.errors import CommitFailedError, KafkaError

from telemetry_service.common.exceptions.exceptions import StreamUnavailableError
from telemetry_service.config.eventbus_config import EventStreamConfig
from telemetry_service.infra.event_bus.topic_manager import TopicManager, TopicSpec
from telemetry_service.infra.event_bus.transport_adapter import (
    HealthCheck,
    MessageHandler,
    StreamMessage,
    TransportAdapter,
)

log = logging.getLogger("telemetry.redpanda_adapter")


def json_default(obj: Any) -> Any:
    """
    Custom JSON serializer for objects not serializable by default json code.
    Handles UUID, datetime, Decimal and Enum.
    """
    if isinstance(obj, uuid.UUID):
        return str(obj)
    elif isinstance(obj, datetime):
        return obj.isoformat()
    elif isinstance(obj, Decimal):
        # Keep the exact scale; float would round 22.50 to 22.5
        return str(obj)
    elif isinstance(obj, Enum):
        return obj.value
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def safe_json_dumps(data: Any) -> str:
    return json.dumps(data, default=json_default, ensure_ascii=False)


def _to_stream_message(record: ConsumerRecord) -> StreamMessage:
    headers = {
        name: (raw.decode("utf-8", errors="replace") if raw is not None else "")
        for name, raw in (record.headers or ())
    }
    timestamp = None
    if record.timestamp is not None and record.timestamp >= 0:
        timestamp = datetime.fromtimestamp(record.timestamp / 1000, tz=timezone.utc)
    return StreamMessage(
        topic=record.topic,
        partition=record.partition,
        offset=record.offset,
        key=record.key.decode("utf-8") if record.key is not None else None,
        value=record.value if record.value is not None else b"",
        headers=headers,
        timestamp=timestamp,
    )


class RedpandaAdapter(TransportAdapter):
    """
    Redpanda/Kafka adapter.

    - Producer: acks=all, idempotent, started lazily and restarted after a
      connection failure.
    - Consumers: enable_auto_commit=False; the offset of each record is
      committed right after its handler returns. Each partition runs in its
      own lane and is paused while that lane works, so a slow partition
      never holds up polling for the others.
    """

    def __init__(self, config: EventStreamConfig):
        self._config = config
        self._bootstrap_servers = config.bootstrap_servers

        self._producer: Optional[AIOKafkaProducer] = None
        self._producer_lock = asyncio.Lock()

        self._running = True
        self._stop_event = asyncio.Event()
        self._consumers: Dict[str, AIOKafkaConsumer] = {}

        # Stats
        self._messages_sent = 0
        self._messages_received = 0
        self._handler_errors = 0
        self._commit_errors = 0
        self._connection_errors = 0
        self._last_error_time = 0.0

    # -------------------------------------------------------------------------
    # Producer
    # -------------------------------------------------------------------------

    async def _ensure_producer(self) -> AIOKafkaProducer:
        """Ensure producer is initialized and started"""
        async with self._producer_lock:
            if self._producer is not None:
                return self._producer

            producer = AIOKafkaProducer(
                bootstrap_servers=self._bootstrap_servers,
                client_id=self._config.client_id,
                acks="all",
                enable_idempotence=True,
                request_timeout_ms=self._config.request_timeout_ms,
            )
            try:
                await producer.start()
            except (KafkaError, OSError):
                await producer.stop()
                raise

            self._producer = producer
            log.info("Kafka producer started successfully")
            return producer

    async def _reset_producer(self) -> None:
        async with self._producer_lock:
            producer, self._producer = self._producer, None
        if producer is not None:
            try:
                await producer.stop()
            except (KafkaError, OSError) as e:
                log.warning(f"Error stopping failed producer: {e}")

    async def publish(
            self,
            topic: str,
            key: Optional[str],
            value: Union[Dict[str, Any], bytes],
            headers: Optional[Dict[str, str]] = None,
            timeout: Optional[float] = None,
    ) -> None:
        if not self._running:
            raise StreamUnavailableError(f"RedpandaAdapter is closing, cannot publish to {topic}")

        payload = value if isinstance(value, bytes) else safe_json_dumps(value).encode("utf-8")
        kafka_headers = [(name, str(val).encode("utf-8")) for name, val in (headers or {}).items()]
        timeout = timeout if timeout is not None else self._config.publish_timeout_seconds

        try:
            producer = await asyncio.wait_for(self._ensure_producer(), timeout=timeout)
            await asyncio.wait_for(
                producer.send_and_wait(
                    topic,
                    value=payload,
                    key=key.encode("utf-8") if key is not None else None,
                    headers=kafka_headers or None,
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            self._record_connection_error()
            raise StreamUnavailableError(f"Publish to '{topic}' timed out after {timeout:.1f}s") from e
        except (KafkaError, OSError) as e:
            self._record_connection_error()
            await self._reset_producer()
            raise StreamUnavailableError(f"Publish to '{topic}' failed: {e}") from e

        self._messages_sent += 1
        log.debug(f"Published to '{topic}' (key={key})")

    def _record_connection_error(self) -> None:
        self._connection_errors += 1
        self._last_error_time = time.time()

    # -------------------------------------------------------------------------
    # Consumers
    # -------------------------------------------------------------------------

    def _new_consumer(self, group_id: str, *topics: str) -> AIOKafkaConsumer:
        return AIOKafkaConsumer(
            *topics,
            bootstrap_servers=self._bootstrap_servers,
            client_id=self._config.client_id,
            group_id=group_id,
            enable_auto_commit=False,
            auto_offset_reset="earliest",
            max_poll_records=self._config.max_poll_records,
            request_timeout_ms=self._config.request_timeout_ms,
        )

    async def consume(self, topic: str, group_id: str, handler: MessageHandler) -> None:
        consumer_key = f"{group_id}:{topic}"
        consumer = self._new_consumer(group_id, topic)
        try:
            await consumer.start()
        except (KafkaError, OSError) as e:
            await consumer.stop()
            raise StreamUnavailableError(f"Cannot start consumer {consumer_key}: {e}") from e

        self._consumers[consumer_key] = consumer
        log.info(f"Consumer {consumer_key} started")

        # One lane per partition; a busy partition stays paused until its lane finishes
        lanes: Dict[TopicPartition, asyncio.Task] = {}
        consecutive_errors = 0
        try:
            while self._running and not self._stop_event.is_set():
                try:
                    records = await consumer.getmany(
                        timeout_ms=self._config.poll_timeout_ms,
                        max_records=self._config.max_poll_records,
                    )
                except KafkaError as e:
                    consecutive_errors += 1
                    backoff = min(2 ** consecutive_errors * 0.1, 10.0)
                    log.error(f"Poll failed for {consumer_key} ({consecutive_errors} in a row): {e}")
                    await asyncio.sleep(backoff)
                    continue

                if consecutive_errors:
                    log.info(f"Consumer {consumer_key} recovered after {consecutive_errors} errors")
                    consecutive_errors = 0

                for tp, batch in records.items():
                    if not batch:
                        continue
                    if tp in lanes:
                        # Fetched before the pause took effect; read again once the lane is free
                        self._rewind(consumer, tp, batch[0].offset)
                        continue
                    consumer.pause(tp)
                    lanes[tp] = asyncio.create_task(
                        self._run_lane(consumer, tp, batch, handler, lanes),
                        name=f"{consumer_key}:{tp.partition}",
                    )

        except asyncio.CancelledError:
            for lane in lanes.values():
                lane.cancel()
            raise

        finally:
            if lanes:
                # Lanes see the stop event and return after their current record
                await asyncio.gather(*lanes.values(), return_exceptions=True)
            self._consumers.pop(consumer_key, None)
            await consumer.stop()
            log.info(f"Consumer {consumer_key} stopped")

    async def _run_lane(
            self,
            consumer: AIOKafkaConsumer,
            tp: TopicPartition,
            batch: List[ConsumerRecord],
            handler: MessageHandler,
            lanes: Dict[TopicPartition, asyncio.Task],
    ) -> None:
        try:
            await self._process_partition(consumer, tp, batch, handler)
        except KafkaError as e:
            # Usually a revoked partition; the next owner reads from the last commit
            log.warning(f"Lane {tp.topic}[{tp.partition}] ended early: {e}")
        finally:
            lanes.pop(tp, None)
            if tp in consumer.assignment():
                consumer.resume(tp)

    async def _process_partition(
            self,
            consumer: AIOKafkaConsumer,
            tp: TopicPartition,
            batch: List[ConsumerRecord],
            handler: MessageHandler,
    ) -> None:
        """Process records of one partition sequentially, committing each one."""
        for record in batch:
            if self._stop_event.is_set():
                # Uncommitted records are fetched again by the next owner
                self._rewind(consumer, tp, record.offset)
                return

            try:
                await handler(_to_stream_message(record))
            except Exception as e:
                self._handler_errors += 1
                log.error(
                    f"Handler failed for {tp.topic}[{tp.partition}]@{record.offset}, "
                    f"rewinding for redelivery: {e}"
                )
                self._rewind(consumer, tp, record.offset)
                await asyncio.sleep(self._config.poll_timeout_ms / 1000)
                return

            self._messages_received += 1

            try:
                await consumer.commit({tp: record.offset + 1})
            except CommitFailedError as e:
                # Partition was revoked; the new owner redelivers from the last commit
                log.warning(f"Commit failed for {tp.topic}[{tp.partition}]@{record.offset}: {e}")
                return
            except KafkaError as e:
                # The next successful commit on this partition covers this offset
                self._commit_errors += 1
                log.error(
                    f"Commit failed for {tp.topic}[{tp.partition}]@{record.offset}, "
                    f"continuing with the offset uncommitted: {e}"
                )

    @staticmethod
    def _rewind(consumer: AIOKafkaConsumer, tp: TopicPartition, offset: int) -> None:
        if tp in consumer.assignment():
            consumer.seek(tp, offset)

    @asynccontextmanager
    async def _assigned_consumer(
            self,
            group_id: str,
            partitions: List[TopicPartition],
    ) -> AsyncIterator[AIOKafkaConsumer]:
        """Consumer bound to the group's offsets without joining the group."""
        consumer = self._new_consumer(group_id)
        try:
            await consumer.start()
        except (KafkaError, OSError) as e:
            await consumer.stop()
            raise StreamUnavailableError(f"Cannot start consumer for group {group_id}: {e}") from e

        try:
            consumer.assign(partitions)
            yield consumer
        finally:
            await consumer.stop()

    async def _partitions(self, topic: str) -> List[TopicPartition]:
        try:
            producer = await self._ensure_producer()
            partition_ids = await asyncio.wait_for(
                producer.partitions_for(topic),
                timeout=self._config.request_timeout_ms / 1000,
            )
        except (KafkaError, OSError, asyncio.TimeoutError) as e:
            raise StreamUnavailableError(f"Cannot read partitions of '{topic}': {e}") from e
        return [TopicPartition(topic, p) for p in sorted(partition_ids)]

    async def read_pending(self, topic: str, group_id: str) -> List[StreamMessage]:
        partitions = await self._partitions(topic)

        async with self._assigned_consumer(group_id, partitions) as consumer:
            try:
                end_offsets = await consumer.end_offsets(partitions)
                beginning_offsets = await consumer.beginning_offsets(partitions)

                remaining: Dict[TopicPartition, int] = {}
                for tp in partitions:
                    committed = await consumer.committed(tp)
                    start = max(committed if committed is not None else 0, beginning_offsets[tp])
                    if start < end_offsets[tp]:
                        consumer.seek(tp, start)
                        remaining[tp] = end_offsets[tp]

                messages: List[StreamMessage] = []
                deadline = time.monotonic() + self._config.dlq_read_timeout_ms / 1000

                while remaining and time.monotonic() < deadline:
                    batch = await consumer.getmany(
                        *remaining.keys(),
                        timeout_ms=self._config.poll_timeout_ms,
                    )
                    for tp, records in batch.items():
                        end = remaining.get(tp)
                        if end is None:
                            continue
                        messages.extend(_to_stream_message(r) for r in records if r.offset < end)
                        if records and records[-1].offset + 1 >= end:
                            del remaining[tp]
            except KafkaError as e:
                raise StreamUnavailableError(f"Cannot read pending records of '{topic}': {e}") from e

        if remaining:
            log.warning(
                f"Read of '{topic}' for group {group_id} timed out with "
                f"{len(remaining)} partition(s) not fully read"
            )

        messages.sort(key=lambda m: (m.partition, m.offset))
        return messages

    async def commit(self, topic: str, group_id: str, offsets: Dict[int, int]) -> None:
        if not offsets:
            return

        commit_map = {TopicPartition(topic, p): offset for p, offset in offsets.items()}
        async with self._assigned_consumer(group_id, list(commit_map)) as consumer:
            try:
                await consumer.commit(commit_map)
            except KafkaError as e:
                raise StreamUnavailableError(f"Commit for group {group_id} on '{topic}' failed: {e}") from e

        log.debug(f"Committed {offsets} for group {group_id} on '{topic}'")

    # -------------------------------------------------------------------------
    # Topics, health, lifecycle
    # -------------------------------------------------------------------------

    async def ensure_topics(self, specs: List[TopicSpec]) -> Dict[str, str]:
        manager = TopicManager(
            bootstrap_servers=self._bootstrap_servers,
            request_timeout_ms=self._config.request_timeout_ms,
        )
        try:
            return await manager.ensure_topics_exist(specs)
        finally:
            await manager.close()

    async def health_check(self) -> HealthCheck:
        details: Dict[str, Any] = {
            "bootstrap_servers": self._bootstrap_servers,
            "running": self._running,
            "messages_sent": self._messages_sent,
            "messages_received": self._messages_received,
            "handler_errors": self._handler_errors,
            "commit_errors": self._commit_errors,
            "connection_errors": self._connection_errors,
            "active_consumers": sorted(self._consumers),
        }
        try:
            partitions = await self._partitions(self._config.telemetry_topic)
        except StreamUnavailableError as e:
            details["error"] = str(e)
            return HealthCheck(is_healthy=False, details=details)

        details["telemetry_partitions"] = len(partitions)
        return HealthCheck(is_healthy=self._running, details=details)

    async def stop(self) -> None:
        self._stop_event.set()

    async def close(self) -> None:
        """Gracefully shut down the adapter"""
        log.info("Shutting down RedpandaAdapter...")
        self._running = False
        self._stop_event.set()
        await self._reset_producer()
        log.info("RedpandaAdapter shutdown complete")
