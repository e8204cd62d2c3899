"""
Unit tests for the circuit breaker.
"""
import asyncio
import pytest
from unittest.mock import Mock

from core.errors import CircuitOpenError
from services.reliability.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerOptions,
    CircuitState,
    with_circuit_breaker,
)


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def make_breaker(threshold=3, reset=60.0, half_open=2, clock=None, **kwargs):
    return CircuitBreaker(
        "test",
        CircuitBreakerOptions(
            failure_threshold=threshold,
            reset_timeout=reset,
            half_open_max_attempts=half_open,
        ),
        clock=clock or FakeClock(),
        **kwargs,
    )


async def succeed():
    return "ok"


async def fail():
    raise RuntimeError("boom")


def run_failure(breaker, fallback=None):
    """Run one failing call, swallowing the error it raises."""
    try:
        return asyncio.run(breaker.call(fail, fallback))
    except RuntimeError:
        return None


class TestTransitions:
    """Test the closed/open/half-open state machine."""

    def test_opens_exactly_at_threshold(self):
        """Test that the circuit opens on the threshold-th failure, not before."""
        breaker = make_breaker(threshold=3)

        run_failure(breaker)
        run_failure(breaker)
        assert breaker.get_state() == CircuitState.CLOSED

        run_failure(breaker)
        assert breaker.get_state() == CircuitState.OPEN

    def test_success_resets_failure_count(self):
        """Test that a success in closed state clears accumulated failures."""
        breaker = make_breaker(threshold=3)

        run_failure(breaker)
        run_failure(breaker)
        assert asyncio.run(breaker.call(succeed)) == "ok"
        run_failure(breaker)

        assert breaker.failure_count == 1
        assert breaker.get_state() == CircuitState.CLOSED

    def test_half_open_after_reset_timeout(self):
        """Test that the open circuit becomes half-open once the cool-down elapses."""
        clock = FakeClock()
        breaker = make_breaker(threshold=1, reset=60.0, clock=clock)
        run_failure(breaker)

        clock.now += 59.9
        assert breaker.get_state() == CircuitState.OPEN

        clock.now += 0.1
        assert breaker.get_state() == CircuitState.HALF_OPEN

    def test_half_open_success_closes(self):
        """Test that a successful trial call closes the circuit."""
        clock = FakeClock()
        breaker = make_breaker(threshold=1, clock=clock)
        run_failure(breaker)
        clock.now += 61

        assert asyncio.run(breaker.call(succeed)) == "ok"
        assert breaker.get_state() == CircuitState.CLOSED
        assert breaker.failure_count == 0

    def test_half_open_needs_max_attempts_failures_to_reopen(self):
        """Test that half-open never reopens before half_open_max_attempts failures."""
        clock = FakeClock()
        breaker = make_breaker(threshold=1, half_open=2, clock=clock)
        run_failure(breaker)
        clock.now += 61
        assert breaker.get_state() == CircuitState.HALF_OPEN

        run_failure(breaker)
        assert breaker.get_state() == CircuitState.HALF_OPEN

        run_failure(breaker)
        assert breaker.get_state() == CircuitState.OPEN

    def test_state_change_callback(self):
        """Test that transitions are reported to on_state_change."""
        changes = []
        breaker = make_breaker(threshold=1, on_state_change=lambda old, new: changes.append((old, new)))

        run_failure(breaker)

        assert changes == [(CircuitState.CLOSED, CircuitState.OPEN)]


class TestOpenCircuit:
    """Test behavior while the circuit is open."""

    def test_rejects_with_circuit_open_error(self):
        """Test that calls raise CircuitOpenError naming the breaker and cool-down."""
        clock = FakeClock()
        breaker = make_breaker(threshold=1, reset=60.0, clock=clock)
        run_failure(breaker)
        clock.now += 20

        operation = Mock()
        with pytest.raises(CircuitOpenError) as exc_info:
            asyncio.run(breaker.call(operation))

        operation.assert_not_called()
        assert exc_info.value.name == "test"
        assert exc_info.value.remaining == pytest.approx(40.0)
        assert "test" in str(exc_info.value)

    def test_uses_fallback_when_open(self):
        """Test that an open circuit resolves to the fallback value."""
        breaker = make_breaker(threshold=1)
        run_failure(breaker)

        assert asyncio.run(breaker.call(succeed, lambda: "cached")) == "cached"

    def test_async_fallback_is_awaited(self):
        """Test that a coroutine-returning fallback is awaited."""
        breaker = make_breaker(threshold=1)
        run_failure(breaker)

        async def fallback():
            return "async-fallback"

        assert asyncio.run(breaker.call(succeed, fallback)) == "async-fallback"

    def test_failure_that_opens_circuit_uses_fallback(self):
        """Test that the call which trips the breaker returns the fallback."""
        breaker = make_breaker(threshold=1)

        assert asyncio.run(breaker.call(fail, lambda: "degraded")) == "degraded"
        assert breaker.get_state() == CircuitState.OPEN

    def test_failure_below_threshold_raises_despite_fallback(self):
        """Test that errors propagate while the circuit stays closed."""
        breaker = make_breaker(threshold=3)

        with pytest.raises(RuntimeError):
            asyncio.run(breaker.call(fail, lambda: "degraded"))


class TestAdminActions:
    """Test reset, forced state and statistics."""

    def test_reset_closes_and_clears(self):
        """Test that reset closes the circuit and clears counters."""
        breaker = make_breaker(threshold=1)
        run_failure(breaker)

        breaker.reset()

        stats = breaker.get_stats()
        assert stats["state"] == "closed"
        assert stats["failure_count"] == 0
        assert stats["last_failure_time"] is None

    def test_force_open_rejects_calls(self):
        """Test that forcing the circuit open rejects calls."""
        breaker = make_breaker()
        breaker.force_state(CircuitState.OPEN)

        assert breaker.is_call_allowed() is False
        with pytest.raises(CircuitOpenError):
            asyncio.run(breaker.call(succeed))

    def test_with_circuit_breaker_composes(self):
        """Test the explicit composition helper."""
        breaker = make_breaker()

        assert asyncio.run(with_circuit_breaker(breaker, succeed)) == "ok"


class TestHalfOpenBudget:
    """Test the trial-call budget while half-open."""

    def test_concurrent_callers_limited_to_trial_budget(self):
        """Test that a wave of concurrent calls admits only half_open_max_attempts trials."""
        clock = FakeClock()
        breaker = make_breaker(threshold=1, half_open=1, clock=clock)
        run_failure(breaker)
        clock.now += 61
        started = []

        async def slow_failure():
            started.append(1)
            await asyncio.sleep(0.01)
            raise RuntimeError("still down")

        async def wave():
            return await asyncio.gather(
                *[breaker.call(slow_failure) for _ in range(5)],
                return_exceptions=True,
            )

        results = asyncio.run(wave())

        assert len(started) == 1
        assert sum(isinstance(r, CircuitOpenError) for r in results) == 4
        assert sum(isinstance(r, RuntimeError) for r in results) == 1
        assert breaker.get_state() == CircuitState.OPEN

    def test_rejected_trials_use_fallback(self):
        """Test that calls beyond the trial budget resolve to the fallback."""
        clock = FakeClock()
        breaker = make_breaker(threshold=1, half_open=2, clock=clock)
        run_failure(breaker)
        clock.now += 61
        started = []

        async def slow_success():
            started.append(1)
            await asyncio.sleep(0.01)
            return "ok"

        async def wave():
            return await asyncio.gather(*[breaker.call(slow_success, lambda: "degraded") for _ in range(4)])

        results = asyncio.run(wave())

        assert len(started) == 2
        assert sorted(results) == ["degraded", "degraded", "ok", "ok"]
        assert breaker.get_state() == CircuitState.CLOSED

    def test_budget_renews_after_reopen(self):
        """Test that each half-open period gets a fresh trial budget."""
        clock = FakeClock()
        breaker = make_breaker(threshold=1, half_open=1, clock=clock)
        run_failure(breaker)
        clock.now += 61
        run_failure(breaker)
        assert breaker.get_state() == CircuitState.OPEN

        clock.now += 61
        assert asyncio.run(breaker.call(succeed)) == "ok"
        assert breaker.get_stats()["half_open_admitted"] == 0
        assert breaker.get_state() == CircuitState.CLOSED

    def test_state_change_callback_sees_half_open(self):
        """Test that every transition through pybreaker reaches on_state_change."""
        clock = FakeClock()
        changes = []
        breaker = make_breaker(
            threshold=1, clock=clock, on_state_change=lambda old, new: changes.append(new)
        )
        run_failure(breaker)
        clock.now += 61

        asyncio.run(breaker.call(succeed))

        assert changes == [CircuitState.OPEN, CircuitState.HALF_OPEN, CircuitState.CLOSED]
