# =============================================================================
# File: telemetry_service/infra/reliability/circuit_breaker.py
# Description: Count-based circuit breaker guarding the event stream
# =============================================================================

import asyncio
import logging
import time
from collections import deque
from enum import Enum, auto
from typing import Any, Awaitable, Callable, Deque, Dict, Optional, TypeVar

from telemetry_service.config.reliability_config import CircuitBreakerConfig
from telemetry_service.infra.metrics.circuit_breaker import (
    STATE_VALUES,
    circuit_breaker_rejected,
    circuit_breaker_state,
    circuit_breaker_transitions,
)

logger = logging.getLogger("telemetry.circuit_breaker")

T = TypeVar('T')


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = auto()
    OPEN = auto()
    HALF_OPEN = auto()


class CircuitBreakerOpenError(Exception):
    """Raised when the circuit breaker rejects a call."""

    def __init__(self, name: str, state: CircuitState):
        super().__init__(f"Circuit breaker {name} is {state.name}")
        self.name = name
        self.state = state


class CircuitBreaker:
    """
    Circuit breaker with a count-based sliding window.

    CLOSED: every call goes through and its outcome is recorded in a window of
    the last `window_size` calls. Once the window is full and the failure rate
    reaches `failure_rate_threshold` the breaker opens.

    OPEN: calls are rejected with CircuitBreakerOpenError. After
    `reset_timeout_seconds` the next state read moves the breaker to HALF_OPEN.

    HALF_OPEN: up to `half_open_max_calls` trial calls are let through. All of
    them succeeding closes the breaker with a fresh window; any failure opens
    it again.

    One instance is shared by all concurrent publishers. Outcomes of calls that
    were admitted before the latest transition are ignored.
    """

    def __init__(
            self,
            config: CircuitBreakerConfig,
            clock: Callable[[], float] = time.monotonic,
    ):
        self.name = config.name
        self.config = config
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._window: Deque[bool] = deque(maxlen=config.window_size)
        self._opened_at: Optional[float] = None
        self._half_open_permits = 0
        self._half_open_successes = 0
        # Bumped on every transition so stale outcomes can be discarded
        self._generation = 0

        self._lock = asyncio.Lock()

        circuit_breaker_state.labels(name=self.name).set(STATE_VALUES[self._state.name])

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    @property
    def state(self) -> CircuitState:
        """Current state; an expired OPEN state moves to HALF_OPEN on read."""
        self._check_open_timeout()
        return self._state

    async def call(self, func: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        """Execute `func` under breaker protection."""
        async with self._lock:
            generation = self._acquire_permission()

        try:
            result = await func(*args, **kwargs)
        except asyncio.CancelledError:
            async with self._lock:
                self._release_permission(generation)
            raise
        except Exception as e:
            await self._on_failure(generation, e)
            raise

        await self._on_success(generation)
        return result

    async def get_state(self) -> Dict[str, Any]:
        """Get current circuit breaker state and window statistics."""
        async with self._lock:
            state = self.state
            opened_for = None
            if state == CircuitState.OPEN and self._opened_at is not None:
                opened_for = round(self._clock() - self._opened_at, 3)

            return {
                "name": self.name,
                "state": state.name,
                "failure_rate": self._failure_rate(),
                "buffered_calls": len(self._window),
                "failed_calls": self._failed_calls(),
                "window_size": self.config.window_size,
                "failure_rate_threshold": self.config.failure_rate_threshold,
                "half_open_permits_used": self._half_open_permits,
                "half_open_successes": self._half_open_successes,
                "open_for_seconds": opened_for,
            }

    # -------------------------------------------------------------------------
    # Admission
    # -------------------------------------------------------------------------

    def _acquire_permission(self) -> int:
        state = self.state

        if state == CircuitState.CLOSED:
            return self._generation

        if state == CircuitState.HALF_OPEN and self._half_open_permits < self.config.half_open_max_calls:
            self._half_open_permits += 1
            return self._generation

        circuit_breaker_rejected.labels(name=self.name).inc()
        raise CircuitBreakerOpenError(self.name, state)

    def _release_permission(self, generation: int) -> None:
        if generation == self._generation and self._state == CircuitState.HALF_OPEN:
            self._half_open_permits = max(self._half_open_permits - 1, 0)

    def _check_open_timeout(self) -> None:
        if self._state != CircuitState.OPEN or self._opened_at is None:
            return
        if self._clock() - self._opened_at >= self.config.reset_timeout_seconds:
            self._transition(CircuitState.HALF_OPEN)

    # -------------------------------------------------------------------------
    # Outcomes
    # -------------------------------------------------------------------------

    async def _on_success(self, generation: int) -> None:
        async with self._lock:
            if generation != self._generation:
                return

            if self._state == CircuitState.HALF_OPEN:
                self._half_open_successes += 1
                if self._half_open_successes >= self.config.half_open_max_calls:
                    self._transition(CircuitState.CLOSED)
                return

            self._window.append(True)
            self._evaluate_window()

    async def _on_failure(self, generation: int, error: Exception) -> None:
        async with self._lock:
            if generation != self._generation:
                return

            logger.debug(f"Circuit breaker {self.name} recorded failure: {error!r}")

            if self._state == CircuitState.HALF_OPEN:
                self._transition(CircuitState.OPEN)
                return

            self._window.append(False)
            self._evaluate_window()

    def _evaluate_window(self) -> None:
        if len(self._window) < self.config.window_size:
            return
        if self._failure_rate() >= self.config.failure_rate_threshold:
            self._transition(CircuitState.OPEN)

    def _failed_calls(self) -> int:
        return sum(1 for ok in self._window if not ok)

    def _failure_rate(self) -> float:
        if not self._window:
            return 0.0
        return self._failed_calls() / len(self._window)

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def _transition(self, new_state: CircuitState) -> None:
        old_state = self._state
        if old_state == new_state:
            return

        failure_rate = self._failure_rate()

        self._state = new_state
        self._generation += 1
        self._half_open_permits = 0
        self._half_open_successes = 0

        if new_state == CircuitState.OPEN:
            self._opened_at = self._clock()
        elif new_state == CircuitState.CLOSED:
            self._opened_at = None
            self._window.clear()

        logger.warning(
            f"Circuit breaker {self.name} transitioned {old_state.name} -> {new_state.name} "
            f"(failure_rate={failure_rate:.2f})"
        )

        circuit_breaker_state.labels(name=self.name).set(STATE_VALUES[new_state.name])
        circuit_breaker_transitions.labels(
            name=self.name,
            from_state=old_state.name,
            to_state=new_state.name,
        ).inc()
