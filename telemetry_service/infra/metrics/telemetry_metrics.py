# telemetry_service/infra/metrics/telemetry_metrics.py
"""Telemetry pipeline metrics."""

import time
from contextlib import contextmanager
from functools import lru_cache
from typing import Iterator, Optional

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Histogram


class TelemetryMetrics:
    """
    Counters for the write path, the projection consumer and the recovery paths.

    Registers on the process-wide registry unless one is passed in, so tests
    can build isolated instances.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry if registry is not None else REGISTRY

        self.received = Counter(
            'telemetry_received_total',
            'Readings accepted by the command handler',
            registry=self.registry,
        )
        self.duplicates = Counter(
            'telemetry_duplicates_total',
            'Readings ignored as idempotent duplicates',
            registry=self.registry,
        )
        self.out_of_order = Counter(
            'telemetry_out_of_order_total',
            'Events older than or equal to the stored projection',
            registry=self.registry,
        )
        self.dlq_sent = Counter(
            'telemetry_dlq_sent_total',
            'Messages moved to the dead-letter topic',
            registry=self.registry,
        )
        self.dlq_reprocessed = Counter(
            'telemetry_dlq_reprocessed_total',
            'Dead-lettered messages re-published to the main topic',
            registry=self.registry,
        )
        self.fallback_stored = Counter(
            'telemetry_fallback_stored_total',
            'Events written to the fallback store instead of the stream',
            registry=self.registry,
        )
        self.fallback_replayed = Counter(
            'telemetry_fallback_replayed_total',
            'Fallback events re-published to the stream',
            registry=self.registry,
        )
        self.fallback_store_failures = Counter(
            'telemetry_fallback_store_failures_total',
            'Events that could be neither published nor stored',
            registry=self.registry,
        )
        self.consumer_retries = Counter(
            'telemetry_consumer_retries_total',
            'In-place retries of a failed projection update',
            registry=self.registry,
        )
        self.processing_seconds = Histogram(
            'telemetry_processing_seconds',
            'Processing time per pipeline operation',
            ['operation'],
            buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0],
            registry=self.registry,
        )

    def record_received(self) -> None:
        self.received.inc()

    def record_duplicate(self) -> None:
        self.duplicates.inc()

    def record_out_of_order(self) -> None:
        self.out_of_order.inc()

    def record_dlq_sent(self) -> None:
        self.dlq_sent.inc()

    def record_dlq_reprocessed(self, count: int = 1) -> None:
        self.dlq_reprocessed.inc(count)

    def record_fallback_stored(self) -> None:
        self.fallback_stored.inc()

    def record_fallback_replayed(self, count: int = 1) -> None:
        self.fallback_replayed.inc(count)

    def record_fallback_store_failure(self) -> None:
        self.fallback_store_failures.inc()

    def record_consumer_retry(self) -> None:
        self.consumer_retries.inc()

    @contextmanager
    def time_operation(self, operation: str) -> Iterator[None]:
        start = time.perf_counter()
        try:
            yield
        finally:
            self.processing_seconds.labels(operation=operation).observe(time.perf_counter() - start)


@lru_cache(maxsize=1)
def get_telemetry_metrics() -> TelemetryMetrics:
    """Process-wide metrics instance on the default registry."""
    return TelemetryMetrics()
