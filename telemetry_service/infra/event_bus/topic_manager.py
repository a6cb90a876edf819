# =============================================================================
# File: telemetry_service/infra/event_bus/topic_manager.py
# Description: Topic bootstrap for the telemetry and dead-letter topics
# =============================================================================

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from aiokafka.admin import AIOKafkaAdminClient, NewTopic
from aiokafka.errors import KafkaError, TopicAlreadyExistsError

from telemetry_service.config.eventbus_config import EventStreamConfig

log = logging.getLogger("telemetry.topic_manager")

_SEVEN_DAYS_MS = 7 * 24 * 60 * 60 * 1000
_THIRTY_DAYS_MS = 30 * 24 * 60 * 60 * 1000


@dataclass
class TopicSpec:
    """Topic specification."""
    name: str
    partitions: int
    replication_factor: int = 1
    retention_ms: Optional[int] = None
    cleanup_policy: str = "delete"

    def to_kafka_config(self) -> Dict[str, str]:
        config = {'cleanup.policy': self.cleanup_policy}
        if self.retention_ms is not None:
            config['retention.ms'] = str(self.retention_ms)
        return config


def telemetry_topic_specs(config: EventStreamConfig) -> List[TopicSpec]:
    """
    Main topic and its dead-letter topic. Both share the partition count so a
    dead-lettered record can be read back per partition.
    """
    return [
        TopicSpec(
            name=config.telemetry_topic,
            partitions=config.topic_partitions,
            replication_factor=config.replication_factor,
            retention_ms=_SEVEN_DAYS_MS,
        ),
        TopicSpec(
            name=config.dlq_topic,
            partitions=config.topic_partitions,
            replication_factor=config.replication_factor,
            # Dead letters wait for an operator
            retention_ms=_THIRTY_DAYS_MS,
        ),
    ]


class TopicManager:
    """Creates missing topics through the Kafka admin API."""

    def __init__(
            self,
            bootstrap_servers: str,
            client_id: str = "telemetry-topic-manager",
            request_timeout_ms: int = 30000,
    ):
        self.bootstrap_servers = bootstrap_servers
        self.request_timeout_ms = request_timeout_ms
        self.admin_client = AIOKafkaAdminClient(
            bootstrap_servers=bootstrap_servers,
            client_id=client_id,
            request_timeout_ms=request_timeout_ms,
        )
        self._admin_started = False

    async def ensure_topics_exist(self, specs: List[TopicSpec]) -> Dict[str, str]:
        """
        Create topics if they don't exist.

        Returns:
            Dict with results: {topic_name: status}

        Statuses:
        - "created": Topic was created successfully
        - "exists": Topic already exists
        - "error: <msg>": Creation failed
        """
        if not self._admin_started:
            try:
                await self.admin_client.start()
                self._admin_started = True
            except (KafkaError, OSError) as e:
                log.error(f"Failed to start admin client: {e}")
                return {spec.name: f"error: {e}" for spec in specs}

        results: Dict[str, str] = {}

        try:
            existing_topics = set(await self.admin_client.list_topics())
        except KafkaError as e:
            log.error(f"Failed to list topics: {e}")
            return {spec.name: f"error: {e}" for spec in specs}

        topics_to_create = []
        for spec in specs:
            if spec.name in existing_topics:
                results[spec.name] = "exists"
                continue
            topics_to_create.append(NewTopic(
                name=spec.name,
                num_partitions=spec.partitions,
                replication_factor=spec.replication_factor,
                topic_configs=spec.to_kafka_config(),
            ))

        if not topics_to_create:
            log.info("All topics already exist")
            return results

        try:
            await self.admin_client.create_topics(
                new_topics=topics_to_create,
                timeout_ms=self.request_timeout_ms,
            )
            for topic in topics_to_create:
                results[topic.name] = "created"
                log.info(f"Created topic: {topic.name}")
        except TopicAlreadyExistsError:
            # Another instance created them first
            for topic in topics_to_create:
                results[topic.name] = "exists"
        except KafkaError as e:
            log.error(f"Failed to create topics: {e}")
            for topic in topics_to_create:
                results[topic.name] = f"error: {e}"

        return results

    async def close(self) -> None:
        if self._admin_started:
            await self.admin_client.close()
            self._admin_started = False
