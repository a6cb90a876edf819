"""
Unit tests for the embedded projection consumer supervisor.
"""

import pytest

from telemetry_service.core.background_tasks import supervise_projection_consumer


class CrashingConsumer:
    """run() raises `crashes` times, then returns as if stopped."""

    def __init__(self, crashes: int):
        self.crashes = crashes
        self.runs = 0

    async def run(self) -> None:
        self.runs += 1
        if self.runs <= self.crashes:
            raise RuntimeError(f"broker gone (run {self.runs})")


@pytest.mark.asyncio
async def test_crashed_consumer_is_restarted(recording_sleep, caplog):
    consumer = CrashingConsumer(crashes=2)

    await supervise_projection_consumer(consumer, sleep=recording_sleep)

    assert consumer.runs == 3
    assert recording_sleep.delays == [2.0, 4.0]
    assert "Projection consumer crashed (1 in a row)" in caplog.text


@pytest.mark.asyncio
async def test_stopped_consumer_is_not_restarted(recording_sleep):
    consumer = CrashingConsumer(crashes=0)

    await supervise_projection_consumer(consumer, sleep=recording_sleep)

    assert consumer.runs == 1
    assert recording_sleep.delays == []


@pytest.mark.asyncio
async def test_restart_delay_is_capped(recording_sleep):
    consumer = CrashingConsumer(crashes=8)

    await supervise_projection_consumer(consumer, sleep=recording_sleep)

    assert recording_sleep.delays[-1] == 60.0
    assert max(recording_sleep.delays) == 60.0
