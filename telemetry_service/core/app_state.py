# =============================================================================
# File: telemetry_service/core/app_state.py
# Description: Application state definition and global state management
# =============================================================================

from typing import Optional, Dict, Any
from datetime import datetime, timezone
import asyncio

# Configuration types
from telemetry_service.config.eventbus_config import EventStreamConfig
from telemetry_service.config.service_config import ServiceConfig

# Event stream types
from telemetry_service.infra.event_bus.transport_adapter import TransportAdapter
from telemetry_service.infra.event_bus.resilient_publisher import ResilientEventPublisher
from telemetry_service.infra.reliability.circuit_breaker import CircuitBreaker

# CQRS types
from telemetry_service.infra.cqrs.command_bus import CommandBus
from telemetry_service.infra.cqrs.query_bus import QueryBus

# Service types
from telemetry_service.infra.event_store.dlq_service import DeadLetterService
from telemetry_service.infra.event_store.fallback_replay_service import FallbackReplayService
from telemetry_service.infra.metrics.telemetry_metrics import TelemetryMetrics
from telemetry_service.infra.worker_core.event_processor import ProjectionConsumer
from telemetry_service.telemetry.ports.telemetry_store_port import FallbackStorePort


# =============================================================================
# APP STATE TYPE DEFINITION
# =============================================================================
class AppState:
    """Type definition for FastAPI app.state with proper type hints"""

    def __init__(self):
        # Configuration
        self.service_config: Optional[ServiceConfig] = None
        self.stream_config: Optional[EventStreamConfig] = None

        # Core infrastructure
        self.db_ready: bool = False
        self.transport: Optional[TransportAdapter] = None
        self.circuit_breaker: Optional[CircuitBreaker] = None
        self.publisher: Optional[ResilientEventPublisher] = None
        self.fallback_store: Optional[FallbackStorePort] = None
        self.metrics: Optional[TelemetryMetrics] = None

        # CQRS components
        self.command_bus: Optional[CommandBus] = None
        self.query_bus: Optional[QueryBus] = None

        # Recovery services
        self.fallback_replay_service: Optional[FallbackReplayService] = None
        self.dlq_service: Optional[DeadLetterService] = None

        # Projection pipeline
        self.projection_consumer: Optional[ProjectionConsumer] = None

        # Background tasks
        self.background_tasks: Dict[str, asyncio.Task] = {}

        # CQRS registration statistics
        self.cqrs_registration_stats: Optional[Dict[str, Any]] = None


# =============================================================================
# GLOBAL STATE
# =============================================================================
_START_TIME = datetime.now(timezone.utc)


def get_start_time() -> datetime:
    """Get application start time"""
    return _START_TIME
