"""
Circuit breaker for calls to the generation service, built on pybreaker.

States:
    closed     - calls pass through, failures are counted
    open       - calls are rejected until reset_timeout has elapsed
    half_open  - a limited number of trial calls decide between closed and open

pybreaker holds the state, the failure counter and the transition
listeners. Cool-down timing and the half-open trial budget are enforced
here so async callers and injected clocks work the same way.
"""
import inspect
import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

import pybreaker

from core.errors import CircuitOpenError

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


_FROM_PYBREAKER = {
    pybreaker.STATE_CLOSED: CircuitState.CLOSED,
    pybreaker.STATE_OPEN: CircuitState.OPEN,
    pybreaker.STATE_HALF_OPEN: CircuitState.HALF_OPEN,
}


@dataclass
class CircuitBreakerOptions:
    """Thresholds for a single breaker."""
    failure_threshold: int = 5
    reset_timeout: float = 60.0  # seconds
    half_open_max_attempts: int = 3


class _TransitionListener(pybreaker.CircuitBreakerListener):
    """Logs pybreaker transitions and forwards them to on_state_change."""

    def __init__(self, owner: "CircuitBreaker"):
        self.owner = owner

    def state_change(self, cb, old_state, new_state):
        old = _FROM_PYBREAKER.get(getattr(old_state, "name", None))
        new = _FROM_PYBREAKER.get(getattr(new_state, "name", None))
        if old is None or new is None or old == new:
            return
        self.owner._on_transition(old, new)


class CircuitBreaker:
    """Per-dependency failure state machine."""

    def __init__(
        self,
        name: str,
        options: Optional[CircuitBreakerOptions] = None,
        on_state_change: Optional[Callable[[CircuitState, CircuitState], None]] = None,
        on_failure: Optional[Callable[[BaseException], None]] = None,
        on_success: Optional[Callable[[], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.options = options or CircuitBreakerOptions()
        self.on_state_change = on_state_change
        self.on_failure = on_failure
        self.on_success = on_success
        self._clock = clock
        self._lock = threading.RLock()

        self._storage = pybreaker.CircuitMemoryStorage(pybreaker.STATE_CLOSED)
        self._breaker = pybreaker.CircuitBreaker(
            fail_max=self.options.failure_threshold,
            reset_timeout=self.options.reset_timeout,
            state_storage=self._storage,
            listeners=[_TransitionListener(self)],
            name=name,
        )
        self._reason = ""

        self.last_failure_time: Optional[float] = None
        # Failed trials and admitted trials in the current half-open period
        self.half_open_attempts = 0
        self.half_open_admitted = 0

    @property
    def state(self) -> CircuitState:
        return _FROM_PYBREAKER[self._breaker.current_state]

    @property
    def failure_count(self) -> int:
        return self._breaker.fail_counter

    def get_state(self) -> CircuitState:
        """Current state, applying the lazy open -> half_open transition."""
        with self._lock:
            self._check_state_transition()
            return self.state

    def is_call_allowed(self) -> bool:
        return self.get_state() != CircuitState.OPEN

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            self._check_state_transition()
            since_failure = None
            if self.last_failure_time is not None:
                since_failure = self._clock() - self.last_failure_time
            return {
                "name": self.name,
                "state": self.state.value,
                "failure_count": self.failure_count,
                "half_open_attempts": self.half_open_attempts,
                "half_open_admitted": self.half_open_admitted,
                "last_failure_time": self.last_failure_time,
                "time_since_last_failure": since_failure,
            }

    async def call(
        self,
        operation: Callable[[], Awaitable[Any]],
        fallback: Optional[Callable[[], Any]] = None,
    ) -> Any:
        """
        Run operation through the breaker.

        When the circuit is open, or half-open with every trial slot taken,
        the fallback is used if given, otherwise CircuitOpenError is raised.
        A failure that opens the circuit also resolves to the fallback when
        one is supplied.
        """
        with self._lock:
            self._check_state_transition()
            admitted = self._admit()
            remaining = self._remaining_cooldown() if self.state == CircuitState.OPEN else 0.0

        if not admitted:
            logger.warning(
                f"[circuit-breaker:{self.name}] call rejected, circuit {self.state.value} "
                f"({remaining:.1f}s remaining)"
            )
            if fallback is not None:
                return await _resolve(fallback())
            raise CircuitOpenError(self.name, self.options.reset_timeout, remaining)

        try:
            result = await operation()
        except Exception as e:
            self.record_failure(e)
            if fallback is not None and self.get_state() == CircuitState.OPEN:
                logger.warning(
                    f"[circuit-breaker:{self.name}] using fallback after failure: {e}"
                )
                return await _resolve(fallback())
            raise

        self.record_success()
        return result

    def record_success(self):
        with self._lock:
            if self.state == CircuitState.HALF_OPEN:
                self._transition_to(CircuitState.CLOSED, "successful call in half-open state")
            self._storage.reset_counter()
        if self.on_success:
            self.on_success()

    def record_failure(self, error: Optional[BaseException] = None):
        with self._lock:
            self._storage.increment_counter()
            self.last_failure_time = self._clock()

            if self.state == CircuitState.HALF_OPEN:
                self.half_open_attempts += 1
                if self.half_open_attempts >= self.options.half_open_max_attempts:
                    self._transition_to(
                        CircuitState.OPEN,
                        f"failed {self.half_open_attempts} attempts in half-open state",
                    )
            elif self.state == CircuitState.CLOSED and self.failure_count >= self.options.failure_threshold:
                self._transition_to(
                    CircuitState.OPEN,
                    f"failure threshold reached ({self.failure_count} failures)",
                )
        if self.on_failure and error is not None:
            self.on_failure(error)

    def force_state(self, state: CircuitState):
        """Admin override."""
        with self._lock:
            state = CircuitState(state)
            if state == CircuitState.OPEN:
                self.last_failure_time = self._clock()
            self._transition_to(state, "forced state change")

    def reset(self):
        with self._lock:
            self._transition_to(CircuitState.CLOSED, "manual reset")
            self._storage.reset_counter()
            self.last_failure_time = None
            self.half_open_attempts = 0
            self.half_open_admitted = 0

    def _admit(self) -> bool:
        # Caller holds the lock
        if self.state == CircuitState.OPEN:
            return False
        if self.state == CircuitState.HALF_OPEN:
            if self.half_open_admitted >= self.options.half_open_max_attempts:
                return False
            self.half_open_admitted += 1
        return True

    def _check_state_transition(self):
        # Caller holds the lock
        if self.state != CircuitState.OPEN or self.last_failure_time is None:
            return
        if self._clock() - self.last_failure_time >= self.options.reset_timeout:
            self._transition_to(CircuitState.HALF_OPEN, "reset timeout elapsed")

    def _remaining_cooldown(self) -> float:
        if self.last_failure_time is None:
            return 0.0
        elapsed = self._clock() - self.last_failure_time
        return max(0.0, self.options.reset_timeout - elapsed)

    def _transition_to(self, new_state: CircuitState, reason: str):
        if self.state == new_state:
            return
        if new_state != CircuitState.OPEN:
            self.half_open_attempts = 0
            self.half_open_admitted = 0

        self._reason = reason
        if new_state == CircuitState.OPEN:
            self._breaker.open()
        elif new_state == CircuitState.HALF_OPEN:
            self._breaker.half_open()
        else:
            self._breaker.close()

    def _on_transition(self, old_state: CircuitState, new_state: CircuitState):
        message = f"[circuit-breaker:{self.name}] {old_state.value} -> {new_state.value}: {self._reason}"
        if new_state == CircuitState.OPEN:
            logger.error(message)
        else:
            logger.warning(message)

        if self.on_state_change:
            self.on_state_change(old_state, new_state)


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


async def with_circuit_breaker(
    breaker: CircuitBreaker,
    operation: Callable[[], Awaitable[Any]],
    fallback: Optional[Callable[[], Any]] = None,
) -> Any:
    """Explicit composition helper: with_circuit_breaker(breaker, lambda: with_retry(...))."""
    return await breaker.call(operation, fallback)
