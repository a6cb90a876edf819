# =============================================================================
# File: tests/fakes/fake_clock.py
# Description: Controllable clocks and sleep for time-dependent components
# =============================================================================

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import List


class FakeMonotonicClock:
    """Stands in for time.monotonic; advance() moves it forward."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeWallClock:
    """Stands in for utc_now."""

    def __init__(self, now: datetime = datetime(2025, 1, 31, 12, 0, tzinfo=timezone.utc)):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class RecordingSleep:
    """Records requested delays without waiting."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def ts(hour: int, minute: int = 0) -> datetime:
    """A UTC timestamp on the fixed test day."""
    return datetime(2025, 1, 31, hour, minute, tzinfo=timezone.utc)
