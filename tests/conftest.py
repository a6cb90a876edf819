"""
Pytest configuration and shared fixtures for telemetry-service.

Everything runs against in-memory fakes; no PostgreSQL or Redpanda needed.
"""

import pytest
from prometheus_client import CollectorRegistry

from telemetry_service.config.eventbus_config import EventStreamConfig
from telemetry_service.config.reliability_config import CircuitBreakerConfig, RetryConfig
from telemetry_service.infra.cqrs.handler_dependencies import HandlerDependencies
from telemetry_service.infra.event_bus.resilient_publisher import ResilientEventPublisher
from telemetry_service.infra.metrics.telemetry_metrics import TelemetryMetrics
from telemetry_service.infra.reliability.circuit_breaker import CircuitBreaker
from tests.fakes.fake_clock import FakeMonotonicClock, FakeWallClock, RecordingSleep
from tests.fakes.fake_event_stream import DLQ_TOPIC, TELEMETRY_TOPIC, FakeEventStream
from tests.fakes.fake_repositories import (
    FakeDeviceProjectionStore,
    FakeFallbackStore,
    FakeTelemetryStore,
    FakeUnitOfWork,
)


@pytest.fixture
def metrics():
    """Metrics on a private registry so tests do not share counters."""
    return TelemetryMetrics(CollectorRegistry())


@pytest.fixture
def stream_config():
    return EventStreamConfig(
        telemetry_topic=TELEMETRY_TOPIC,
        dlq_topic=DLQ_TOPIC,
        consumer_group="test-projection",
        dlq_reader_group="test-dlq-reader",
    )


@pytest.fixture
def event_stream():
    return FakeEventStream(partitions=3)


@pytest.fixture
def telemetry_store():
    return FakeTelemetryStore()


@pytest.fixture
def projection_store():
    return FakeDeviceProjectionStore()


@pytest.fixture
def fallback_store():
    return FakeFallbackStore()


@pytest.fixture
def monotonic_clock():
    return FakeMonotonicClock()


@pytest.fixture
def wall_clock():
    return FakeWallClock()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def breaker_config():
    return CircuitBreakerConfig(
        name="test_stream",
        window_size=10,
        failure_rate_threshold=0.5,
        reset_timeout_seconds=10.0,
        half_open_max_calls=3,
    )


@pytest.fixture
def circuit_breaker(breaker_config, monotonic_clock):
    return CircuitBreaker(breaker_config, clock=monotonic_clock)


@pytest.fixture
def consumer_retry_config():
    """Three retries at 1s, 2s, 4s."""
    return RetryConfig(
        max_attempts=4,
        initial_delay_ms=1000,
        max_delay_ms=4000,
        backoff_factor=2.0,
    )


@pytest.fixture
def publisher(event_stream, fallback_store, circuit_breaker, metrics, wall_clock):
    return ResilientEventPublisher(
        event_stream,
        fallback_store,
        circuit_breaker,
        metrics,
        topic=TELEMETRY_TOPIC,
        publish_timeout_seconds=1.0,
        clock=wall_clock,
    )


@pytest.fixture
def unit_of_work(telemetry_store):
    return FakeUnitOfWork(telemetry_store)


@pytest.fixture
def handler_deps(telemetry_store, projection_store, publisher, unit_of_work, metrics):
    return HandlerDependencies(
        telemetry_repo=telemetry_store,
        projection_repo=projection_store,
        publisher=publisher,
        unit_of_work=unit_of_work,
        metrics=metrics,
    )
