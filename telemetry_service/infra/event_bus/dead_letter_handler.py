# =============================================================================
# File: telemetry_service/infra/event_bus/dead_letter_handler.py
# Description: In-place retry with exponential backoff, then dead-lettering
# =============================================================================

from __future__ import annotations

import asyncio
import dataclasses
import logging
from datetime import datetime
from typing import Awaitable, Callable, Dict, Optional

from telemetry_service.common.base.base_model import utc_now
from telemetry_service.common.exceptions.exceptions import StreamUnavailableError
from telemetry_service.common.tracing import TRACE_ID_HEADER, get_trace_id, trace_context, with_trace_header
from telemetry_service.config.reliability_config import RetryConfig
from telemetry_service.infra.event_bus.transport_adapter import MessageHandler, StreamMessage, TransportAdapter
from telemetry_service.infra.metrics.telemetry_metrics import TelemetryMetrics
from telemetry_service.infra.reliability.retry import retry_async
from telemetry_service.telemetry.exceptions import DeadLetterPublishError

log = logging.getLogger("telemetry.dead_letter")

# Metadata tags carried as message headers
RETRY_COUNT_HEADER = "retry-count"
EXCEPTION_MESSAGE_HEADER = "exception-message"
EXCEPTION_TYPE_HEADER = "exception-type"
ORIGINAL_TOPIC_HEADER = "original-topic"
ORIGINAL_PARTITION_HEADER = "original-partition"
ORIGINAL_OFFSET_HEADER = "original-offset"
ORIGINAL_TIMESTAMP_HEADER = "original-timestamp"


def parse_retry_count(headers: Dict[str, str]) -> int:
    """Retry count carried by a message; malformed or missing values count as 0."""
    try:
        return max(int(headers.get(RETRY_COUNT_HEADER, "0")), 0)
    except ValueError:
        return 0


def describe_error(error: BaseException) -> str:
    return str(error) or type(error).__name__


class DeadLetterHandler:
    """
    Wraps a message handler with bounded retry.

    A failing message is retried in place with exponential backoff (1s, 2s, 4s
    by default). Before each retry the message is tagged with the running
    retry-count and the latest exception message. When the retries are
    exhausted the tagged message goes to the dead-letter topic and the wrapper
    returns normally, so the original record is acknowledged and the
    partition moves on.

    Errors are not classified: a malformed payload uses the same retry budget
    as a store outage.

    retry-count continues from the value already on the message, so a
    reprocessed dead letter that fails again keeps accumulating history.

    If the dead-letter topic itself rejects the message, DeadLetterPublishError
    is raised and the original record stays unacknowledged.

    The record's trace id is bound while it is handled and travels on to the
    dead-letter topic.
    """

    def __init__(
            self,
            transport: TransportAdapter,
            dlq_topic: str,
            retry_config: RetryConfig,
            metrics: TelemetryMetrics,
            publish_timeout_seconds: Optional[float] = None,
            sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
            clock: Callable[[], datetime] = utc_now,
    ):
        self._transport = transport
        self._dlq_topic = dlq_topic
        self._retry_config = retry_config
        self._metrics = metrics
        self._publish_timeout = publish_timeout_seconds
        self._sleep = sleep
        self._clock = clock

    def wrap(self, handler: MessageHandler) -> MessageHandler:
        async def guarded(message: StreamMessage) -> None:
            await self.handle(message, handler)

        return guarded

    async def handle(self, message: StreamMessage, handler: MessageHandler) -> None:
        with trace_context(message.headers.get(TRACE_ID_HEADER)):
            await self._handle(message, handler)

    async def _handle(self, message: StreamMessage, handler: MessageHandler) -> None:
        base_retry_count = parse_retry_count(message.headers)
        current = message

        async def attempt() -> None:
            await handler(current)

        def on_retry(attempt_number: int, error: Exception, delay_seconds: float) -> None:
            nonlocal current
            current = self._tag(current, base_retry_count + attempt_number, error)
            self._metrics.record_consumer_retry()
            log.warning(
                f"Retrying {message.topic}[{message.partition}]@{message.offset} "
                f"(retry-count={base_retry_count + attempt_number}) in {delay_seconds:.1f}s: "
                f"{describe_error(error)}"
            )

        try:
            await retry_async(
                attempt,
                retry_config=self._retry_config,
                context=f"{message.topic}[{message.partition}]@{message.offset}",
                on_retry=on_retry,
                sleep=self._sleep,
            )
            return
        except Exception as e:
            final_error = e

        retry_count = base_retry_count + self._retry_config.max_attempts - 1
        await self._dead_letter(self._tag(current, retry_count, final_error), final_error)

    def _tag(self, message: StreamMessage, retry_count: int, error: BaseException) -> StreamMessage:
        headers = dict(message.headers)
        headers[RETRY_COUNT_HEADER] = str(retry_count)
        headers[EXCEPTION_MESSAGE_HEADER] = describe_error(error)
        headers[EXCEPTION_TYPE_HEADER] = type(error).__name__
        return dataclasses.replace(message, headers=headers)

    async def _dead_letter(self, message: StreamMessage, error: Exception) -> None:
        headers = with_trace_header(message.headers)
        headers[ORIGINAL_TOPIC_HEADER] = message.topic
        headers[ORIGINAL_PARTITION_HEADER] = str(message.partition)
        headers[ORIGINAL_OFFSET_HEADER] = str(message.offset)
        headers[ORIGINAL_TIMESTAMP_HEADER] = (message.timestamp or self._clock()).isoformat()

        try:
            await self._transport.publish(
                self._dlq_topic,
                message.key,
                message.value,
                headers=headers,
                timeout=self._publish_timeout,
            )
        except StreamUnavailableError as e:
            log.error(
                f"Could not dead-letter {message.topic}[{message.partition}]@{message.offset}; "
                f"leaving it unacknowledged: {e}"
            )
            raise DeadLetterPublishError(
                f"Dead-letter publish failed for {message.topic}[{message.partition}]@{message.offset}: {e}"
            ) from e

        self._metrics.record_dlq_sent()
        log.error(
            f"Message {message.topic}[{message.partition}]@{message.offset} (key={message.key}) "
            f"moved to {self._dlq_topic} after {headers[RETRY_COUNT_HEADER]} retries "
            f"(trace {get_trace_id()}): {describe_error(error)}"
        )
