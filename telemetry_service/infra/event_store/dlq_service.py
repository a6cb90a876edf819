# telemetry_service/infra/event_store/dlq_service.py
"""
Dead Letter Service - operator view of the dead-letter topic

- list_messages(): non-destructive read of everything not yet reprocessed
- reprocess(): re-publish to the main topic, then commit per partition

Position on the dead-letter topic is the committed offset of a dedicated
reader group; a record counts as removed once that offset moves past it.
"""

import logging
from collections import OrderedDict
from datetime import datetime
from typing import Dict, List, Optional

from telemetry_service.common.exceptions.exceptions import StreamUnavailableError
from telemetry_service.common.tracing import TRACE_ID_HEADER
from telemetry_service.infra.event_bus.dead_letter_handler import (
    EXCEPTION_MESSAGE_HEADER,
    EXCEPTION_TYPE_HEADER,
    ORIGINAL_TIMESTAMP_HEADER,
    ORIGINAL_TOPIC_HEADER,
    RETRY_COUNT_HEADER,
    parse_retry_count,
)
from telemetry_service.infra.event_bus.transport_adapter import StreamMessage, TransportAdapter
from telemetry_service.infra.metrics.telemetry_metrics import TelemetryMetrics
from telemetry_service.telemetry.read_models import DeadLetterMessage

log = logging.getLogger("telemetry.dlq")


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


class DeadLetterService:
    """List and reprocess dead-lettered telemetry messages."""

    def __init__(
            self,
            transport: TransportAdapter,
            dlq_topic: str,
            main_topic: str,
            reader_group: str,
            metrics: TelemetryMetrics,
            publish_timeout_seconds: Optional[float] = None,
    ):
        self._transport = transport
        self._dlq_topic = dlq_topic
        self._main_topic = main_topic
        self._reader_group = reader_group
        self._metrics = metrics
        self._publish_timeout = publish_timeout_seconds

    async def list_messages(self) -> List[DeadLetterMessage]:
        pending = await self._transport.read_pending(self._dlq_topic, self._reader_group)
        return [self._to_dead_letter(message) for message in pending]

    async def reprocess(self) -> int:
        """
        Re-publish every pending dead letter onto the main topic.

        Within a partition messages are re-published in offset order and the
        reader group is committed up to the last contiguous success; the first
        failure leaves it and every later message of that partition in place.
        retry-count and the trace id are carried over, so the retry history
        keeps accumulating and the message stays traceable.
        """
        pending = await self._transport.read_pending(self._dlq_topic, self._reader_group)
        if not pending:
            log.info("No dead-lettered messages to reprocess")
            return 0

        by_partition: Dict[int, List[StreamMessage]] = OrderedDict()
        for message in sorted(pending, key=lambda m: (m.partition, m.offset)):
            by_partition.setdefault(message.partition, []).append(message)

        commits: Dict[int, int] = {}
        reprocessed = 0

        for partition, messages in by_partition.items():
            for message in messages:
                try:
                    await self._transport.publish(
                        self._main_topic,
                        message.key,
                        message.value,
                        headers=self._carried_headers(message),
                        timeout=self._publish_timeout,
                    )
                except StreamUnavailableError as e:
                    log.warning(
                        f"Reprocessing stopped for {self._dlq_topic}[{partition}] at offset "
                        f"{message.offset}; it stays dead-lettered: {e}"
                    )
                    break

                commits[partition] = message.offset + 1
                reprocessed += 1

        if commits:
            await self._transport.commit(self._dlq_topic, self._reader_group, commits)

        self._metrics.record_dlq_reprocessed(reprocessed)
        log.info(f"Reprocessed {reprocessed}/{len(pending)} dead-lettered messages")
        return reprocessed

    @staticmethod
    def _carried_headers(message: StreamMessage) -> Dict[str, str]:
        headers = {RETRY_COUNT_HEADER: str(parse_retry_count(message.headers))}
        trace_id = message.headers.get(TRACE_ID_HEADER)
        if trace_id:
            headers[TRACE_ID_HEADER] = trace_id
        return headers

    @staticmethod
    def _to_dead_letter(message: StreamMessage) -> DeadLetterMessage:
        event = None
        raw_value = None
        try:
            decoded = message.json()
            if isinstance(decoded, dict):
                event = decoded
            else:
                raw_value = message.value.decode("utf-8", errors="replace")
        except ValueError:
            raw_value = message.value.decode("utf-8", errors="replace")

        return DeadLetterMessage(
            event=event,
            raw_value=raw_value,
            error_message=message.headers.get(EXCEPTION_MESSAGE_HEADER),
            exception_type=message.headers.get(EXCEPTION_TYPE_HEADER),
            retry_count=parse_retry_count(message.headers),
            timestamp=message.timestamp,
            original_topic=message.headers.get(ORIGINAL_TOPIC_HEADER),
            original_timestamp=_parse_timestamp(message.headers.get(ORIGINAL_TIMESTAMP_HEADER)),
            partition=message.partition,
            offset=message.offset,
        )
