"""
Three-state circuit breaker (CLOSED -> OPEN -> HALF_OPEN -> CLOSED).

One instance is shared by every caller of a dependency in the process, so
the counters live behind a lock and transitions are visible to all
concurrent callers as soon as they happen. The lock is never held across
an ``await``.

    CLOSED    - calls pass through, consecutive failures are counted
    OPEN      - calls are rejected without touching the dependency
    HALF_OPEN - after the recovery timeout, exactly one trial call is let through
"""
import asyncio
import threading
import time
from enum import Enum
from typing import Awaitable, Callable, TypeVar

import structlog

from shared.observability.metrics import ecomm_circuit_breaker_state

logger = structlog.get_logger(__name__)

T = TypeVar("T")

_STATE_GAUGE_VALUE = {"CLOSED": 0, "HALF_OPEN": 1, "OPEN": 2}


class CircuitState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class CircuitOpenError(Exception):
    """Raised instead of calling the dependency while the circuit is open."""

    def __init__(self, name: str, retry_after: float):
        super().__init__(f"Circuit breaker '{name}' is OPEN - service unavailable")
        self.name = name
        self.retry_after = retry_after


class CircuitBreaker:
    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock
        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time = 0.0
        self._trial_in_flight = False
        self._publish_state()

    @property
    def state(self) -> CircuitState:
        with self._lock:
            self._maybe_half_open()
            return self._state

    @property
    def failure_count(self) -> int:
        with self._lock:
            return self._failure_count

    async def execute(self, fn: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        """Run ``fn`` through the breaker, raising CircuitOpenError when it may not run."""
        self._before_call()
        try:
            result = await fn(*args, **kwargs)
        except asyncio.CancelledError:
            # A cancelled trial says nothing about the dependency's health.
            self._release_trial()
            raise
        except Exception:
            self._record_failure()
            raise
        self._record_success()
        return result

    def reset(self):
        with self._lock:
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._trial_in_flight = False
            self._publish_state()

    # --- internals: all called with or acquiring self._lock ---

    def _maybe_half_open(self):
        if self._state is CircuitState.OPEN and self._clock() - self._last_failure_time >= self.recovery_timeout:
            self._state = CircuitState.HALF_OPEN
            self._trial_in_flight = False
            self._publish_state()
            logger.info("circuit_half_open", breaker=self.name)

    def _before_call(self):
        with self._lock:
            self._maybe_half_open()
            if self._state is CircuitState.OPEN:
                remaining = self.recovery_timeout - (self._clock() - self._last_failure_time)
                raise CircuitOpenError(self.name, max(remaining, 0.0))
            if self._state is CircuitState.HALF_OPEN:
                if self._trial_in_flight:
                    raise CircuitOpenError(self.name, 0.0)
                self._trial_in_flight = True

    def _record_success(self):
        with self._lock:
            if self._state is CircuitState.HALF_OPEN:
                logger.info("circuit_closed", breaker=self.name)
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._trial_in_flight = False
            self._publish_state()

    def _record_failure(self):
        with self._lock:
            self._failure_count += 1
            self._last_failure_time = self._clock()
            if self._state is CircuitState.HALF_OPEN:
                self._state = CircuitState.OPEN
                self._trial_in_flight = False
                logger.warning("circuit_reopened", breaker=self.name, failure_count=self._failure_count)
            elif self._state is CircuitState.CLOSED and self._failure_count >= self.failure_threshold:
                self._state = CircuitState.OPEN
                logger.warning("circuit_opened", breaker=self.name, failure_count=self._failure_count)
            self._publish_state()

    def _release_trial(self):
        with self._lock:
            self._trial_in_flight = False

    def _publish_state(self):
        ecomm_circuit_breaker_state.labels(breaker=self.name).set(_STATE_GAUGE_VALUE[self._state.value])
