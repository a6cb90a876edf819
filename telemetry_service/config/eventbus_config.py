# =============================================================================
# File: telemetry_service/config/eventbus_config.py
# Description: Redpanda/Kafka event stream configuration
# =============================================================================

from functools import lru_cache

from pydantic import Field
from pydantic_settings import SettingsConfigDict

from telemetry_service.common.base.base_config import BaseConfig


class EventStreamConfig(BaseConfig):
    """
    Event stream settings.

    All events for one device share a partition key (the device id), so the
    partition count bounds consumer parallelism but never breaks per-device order.
    """

    model_config = SettingsConfigDict(**{
        **BaseConfig.model_config,
        "env_prefix": "REDPANDA_",
    })

    bootstrap_servers: str = Field(default="localhost:9092")
    client_id: str = Field(default="telemetry-service")

    # Topics
    telemetry_topic: str = Field(default="telemetry.recorded")
    dlq_topic: str = Field(default="telemetry.recorded.dlq")
    topic_partitions: int = Field(default=3, ge=1)
    replication_factor: int = Field(default=1, ge=1)
    auto_create_topics: bool = Field(default=True)

    # Consumer groups
    consumer_group: str = Field(default="telemetry-projection")
    dlq_reader_group: str = Field(default="telemetry-dlq-reprocessor")

    # Timeouts and polling
    publish_timeout_seconds: float = Field(default=10.0, gt=0)
    poll_timeout_ms: int = Field(default=1000, ge=1)
    max_poll_records: int = Field(default=100, ge=1)
    dlq_read_timeout_ms: int = Field(default=5000, ge=1)
    request_timeout_ms: int = Field(default=30000, ge=1)


@lru_cache(maxsize=1)
def get_event_stream_config() -> EventStreamConfig:
    return EventStreamConfig()


def reset_event_stream_config() -> None:
    """Reset settings singleton (for testing)."""
    get_event_stream_config.cache_clear()
