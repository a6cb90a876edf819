# =============================================================================
# File: telemetry_service/core/background_tasks.py
# Description: Background task management
# =============================================================================

import asyncio
import logging
from typing import Awaitable, Callable

from telemetry_service.core.fastapi_types import FastAPI

from telemetry_service.config.reliability_config import get_reliability_settings
from telemetry_service.infra.worker_core.event_processor import ProjectionConsumer

logger = logging.getLogger("telemetry.background")

CONSUMER_RESTART_MAX_DELAY_SECONDS = 60.0


async def supervise_projection_consumer(
        consumer: ProjectionConsumer,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> None:
    """
    Keep the embedded projection consumer alive.

    run() only returns once the consumer was asked to stop. A crash is logged
    and the consumer restarted after a backoff of 2, 4, 8 ... seconds, capped
    at one minute.
    """
    crashes = 0
    while True:
        try:
            await consumer.run()
            return
        except Exception as e:
            crashes += 1
            delay = min(2.0 ** crashes, CONSUMER_RESTART_MAX_DELAY_SECONDS)
            logger.error(
                f"Projection consumer crashed ({crashes} in a row), restarting in {delay:.0f}s: {e}",
                exc_info=True,
            )
            await sleep(delay)


async def start_background_tasks(app: FastAPI) -> None:
    """Embedded projection consumer and the optional periodic fallback replay"""
    tasks = app.state.background_tasks

    consumer = app.state.projection_consumer
    if consumer is not None:
        tasks["projection_consumer"] = asyncio.create_task(
            supervise_projection_consumer(consumer), name="projection-consumer"
        )
        logger.info("Projection consumer task started")

    interval = get_reliability_settings().fallback_replay_interval_seconds
    if interval > 0 and app.state.fallback_replay_service is not None:
        tasks["fallback_replay"] = asyncio.create_task(
            app.state.fallback_replay_service.run_periodic(interval), name="fallback-replay"
        )
        logger.info(f"Periodic fallback replay task started (every {interval:.0f}s)")


async def stop_background_tasks(app: FastAPI) -> None:
    """Ask the consumer to finish its current batch, then cancel what is left"""
    tasks = app.state.background_tasks
    if not tasks:
        return

    consumer = app.state.projection_consumer
    if consumer is not None:
        await consumer.stop()

    for name, task in tasks.items():
        if name != "projection_consumer" and not task.done():
            task.cancel()

    done, pending = await asyncio.wait(tasks.values(), timeout=10.0)
    for task in pending:
        logger.warning(f"Background task {task.get_name()} did not stop in time, cancelling")
        task.cancel()

    for task in done:
        if task.cancelled():
            continue
        error = task.exception()
        if error is not None:
            logger.error(f"Background task {task.get_name()} failed: {error}", exc_info=error)

    tasks.clear()
    logger.info("Background tasks stopped")
