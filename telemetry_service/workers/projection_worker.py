# =============================================================================
# File: telemetry_service/workers/projection_worker.py
# Description: Standalone projection consumer (same pipeline as the embedded
#              consumer, without the HTTP surface)
# =============================================================================

import asyncio
import logging
import os
import signal
import sys
from typing import Optional

from telemetry_service.config.eventbus_config import EventStreamConfig, get_event_stream_config
from telemetry_service.config.logging_config import setup_logging
from telemetry_service.config.pg_client_config import get_database_config
from telemetry_service.infra.event_bus.redpanda_adapter import RedpandaAdapter
from telemetry_service.infra.event_bus.topic_manager import telemetry_topic_specs
from telemetry_service.infra.metrics.telemetry_metrics import get_telemetry_metrics
from telemetry_service.infra.persistence.pg_client import close_db_pool, init_db_pool, run_schema_from_file
from telemetry_service.infra.worker_core.event_processor import ProjectionConsumer, create_projection_consumer

log = logging.getLogger("telemetry.worker.projection")


class ProjectionWorker:
    """Owns the PostgreSQL pool, the stream adapter and one projection consumer."""

    def __init__(self, config: Optional[EventStreamConfig] = None):
        self.config = config or get_event_stream_config()
        self._transport: Optional[RedpandaAdapter] = None
        self._consumer: Optional[ProjectionConsumer] = None
        self._consumer_task: Optional[asyncio.Task] = None
        self._shutdown_event = asyncio.Event()
        self._signal_count = 0
        self._db_ready = False

    async def initialize(self) -> None:
        db_config = get_database_config()
        await init_db_pool(db_config)
        self._db_ready = True
        if db_config.apply_schema:
            await run_schema_from_file(db_config.schema_file)

        self._transport = RedpandaAdapter(self.config)
        if self.config.auto_create_topics:
            await self._transport.ensure_topics(telemetry_topic_specs(self.config))

        self._consumer = create_projection_consumer(self._transport, self.config, get_telemetry_metrics())
        log.info(
            f"Projection worker initialized: topic={self.config.telemetry_topic}, "
            f"group={self.config.consumer_group}, dlq={self.config.dlq_topic}"
        )

    async def start(self) -> None:
        self._consumer_task = asyncio.create_task(self._consumer.run(), name="projection-consumer")

    async def wait_for_shutdown(self) -> None:
        """Wait for a shutdown signal, or for the consumer to exit on its own"""
        shutdown_waiter = asyncio.create_task(self._shutdown_event.wait())
        done, _ = await asyncio.wait(
            {shutdown_waiter, self._consumer_task},
            return_when=asyncio.FIRST_COMPLETED,
        )
        if self._consumer_task in done and not self._shutdown_event.is_set():
            shutdown_waiter.cancel()
            # Surface a crashed consumer to run_worker()
            self._consumer_task.result()
            log.warning("Projection consumer exited without a shutdown signal")

    async def stop(self) -> None:
        if self._consumer is not None:
            await self._consumer.stop()
        if self._consumer_task is not None and not self._consumer_task.done():
            try:
                await asyncio.wait_for(self._consumer_task, timeout=10.0)
            except asyncio.TimeoutError:
                log.warning("Projection consumer did not finish its batch in time")

        if self._transport is not None:
            await self._transport.close()
        if self._db_ready:
            await close_db_pool()
            self._db_ready = False

        if self._consumer is not None:
            log.info(f"Projection worker stopped: {self._consumer.get_status()}")

    def handle_signal(self, sig, frame):
        """
        Handle system signals with multi-level support.

        1st signal: Graceful shutdown
        2nd signal: Expedite shutdown
        3rd+ signal: Force exit
        """
        self._signal_count += 1
        signal_name = signal.Signals(sig).name

        log.warning(f"Received signal {signal_name} (count: {self._signal_count})")

        if self._signal_count == 1:
            log.warning("Initiating graceful shutdown...")
            self._shutdown_event.set()
        elif self._signal_count == 2:
            log.warning("Second signal received - expediting shutdown")
            self._shutdown_event.set()
            if self._consumer_task is not None:
                self._consumer_task.cancel()
        else:
            log.error("Multiple signals received - forcing immediate exit")
            os._exit(1)


# =============================================================================
# Main Entry Point
# =============================================================================

async def run_worker():
    """Run the projection worker until SIGINT/SIGTERM"""
    setup_logging(
        service_name="projection-worker",
        log_file=os.getenv("WORKER_LOG_FILE"),
    )

    worker = ProjectionWorker()
    try:
        await worker.initialize()
        await worker.start()

        signal.signal(signal.SIGINT, worker.handle_signal)
        signal.signal(signal.SIGTERM, worker.handle_signal)

        log.info("Projection worker ready")
        await worker.wait_for_shutdown()

    except Exception as e:
        log.error(f"Worker failed: {e}", exc_info=True)
        raise
    finally:
        try:
            await asyncio.wait_for(worker.stop(), timeout=30.0)
            log.info("Graceful shutdown completed")
        except asyncio.TimeoutError:
            log.error("Graceful shutdown timed out")


def main():
    """Main entry point"""
    try:
        asyncio.run(run_worker())
    except KeyboardInterrupt:
        print("\nWorker interrupted")
    except Exception as e:
        print(f"Worker crashed: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
