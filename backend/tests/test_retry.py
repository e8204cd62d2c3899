"""
Unit tests for retry with exponential backoff.
"""
import asyncio
import pytest
from unittest.mock import AsyncMock, Mock

from core.errors import GenerationError
from services.reliability.retry import (
    RetryOptions,
    FAST_RETRY_OPTIONS,
    calculate_delay,
    is_retryable_error,
    make_retryable,
    with_options,
    with_retry,
)


def recording_sleep():
    delays = []

    async def sleep(delay):
        delays.append(delay)

    return sleep, delays


class TestCalculateDelay:
    """Test backoff delay computation."""

    def test_no_jitter_at_midpoint(self):
        """Test that rand()=0.5 gives the plain exponential delay."""
        assert calculate_delay(0, 1.0, 30.0, rand=lambda: 0.5) == 1.0
        assert calculate_delay(3, 1.0, 30.0, rand=lambda: 0.5) == 8.0

    def test_jitter_bounds(self):
        """Test that jitter stays within +/-25%."""
        assert calculate_delay(2, 1.0, 30.0, rand=lambda: 0.0) == pytest.approx(3.0)
        assert calculate_delay(2, 1.0, 30.0, rand=lambda: 1.0) == pytest.approx(5.0)

    def test_capped_at_max_delay(self):
        """Test that the delay never exceeds max_delay."""
        for attempt in range(12):
            assert calculate_delay(attempt, 1.0, 30.0, rand=lambda: 1.0) <= 30.0


class TestClassifier:
    """Test transient-error classification."""

    def test_retryable_status_codes(self):
        """Test that rate limit and server errors are retryable."""
        for status in (429, 500, 502, 503, 504):
            assert is_retryable_error(GenerationError("err", status_code=status)) is True

    def test_client_errors_not_retryable(self):
        """Test that client errors are not retryable."""
        assert is_retryable_error(GenerationError("bad request", status_code=400)) is False
        assert is_retryable_error(GenerationError("unauthorized", status_code=401)) is False

    def test_network_codes(self):
        """Test that network error codes are retryable."""
        assert is_retryable_error(GenerationError("reset", code="ECONNRESET")) is True
        assert is_retryable_error(GenerationError("timed out", code="ETIMEDOUT")) is True

    def test_builtin_network_exceptions(self):
        """Test that connection and timeout exceptions are retryable."""
        assert is_retryable_error(ConnectionResetError()) is True
        assert is_retryable_error(TimeoutError()) is True

    def test_messages(self):
        """Test classification by error message."""
        assert is_retryable_error(Exception("Rate limit exceeded")) is True
        assert is_retryable_error(Exception("upstream timeout")) is True
        assert is_retryable_error(ValueError("malformed input")) is False

    def test_response_status_code(self):
        """Test that errors carrying a response object are classified by its status."""
        error = Exception("http error")
        error.response = Mock(status_code=503)
        assert is_retryable_error(error) is True


class TestWithRetry:
    """Test the retry loop."""

    def test_success_first_try(self):
        """Test that a successful operation runs once."""
        operation = AsyncMock(return_value="done")
        sleep, delays = recording_sleep()

        assert asyncio.run(with_retry(operation, RetryOptions(max_retries=3), sleep=sleep)) == "done"
        assert operation.await_count == 1
        assert delays == []

    def test_at_most_max_retries_plus_one_attempts(self):
        """Test that a persistently transient failure is attempted max_retries + 1 times."""
        operation = AsyncMock(side_effect=GenerationError("unavailable", status_code=503))
        sleep, delays = recording_sleep()

        with pytest.raises(GenerationError):
            asyncio.run(with_retry(operation, RetryOptions(max_retries=3, base_delay=1.0, max_delay=30.0), sleep=sleep))

        assert operation.await_count == 4
        assert len(delays) == 3
        assert all(d <= 30.0 for d in delays)

    def test_non_retryable_raises_immediately(self):
        """Test that non-transient errors consume no retry."""
        operation = AsyncMock(side_effect=GenerationError("bad request", status_code=400))
        sleep, delays = recording_sleep()

        with pytest.raises(GenerationError):
            asyncio.run(with_retry(operation, RetryOptions(max_retries=3), sleep=sleep))

        assert operation.await_count == 1
        assert delays == []

    def test_recovers_after_transient_failures(self):
        """Test that transient failures are retried until success."""
        operation = AsyncMock(side_effect=[
            GenerationError("unavailable", status_code=503),
            GenerationError("reset", code="ECONNRESET"),
            "recovered",
        ])
        sleep, _ = recording_sleep()

        assert asyncio.run(with_retry(operation, RetryOptions(max_retries=3), sleep=sleep)) == "recovered"
        assert operation.await_count == 3

    def test_on_retry_callback(self):
        """Test that on_retry receives the 1-based attempt, error and delay."""
        error = GenerationError("unavailable", status_code=503)
        operation = AsyncMock(side_effect=[error, "ok"])
        on_retry = Mock()
        sleep, delays = recording_sleep()

        asyncio.run(with_retry(operation, RetryOptions(max_retries=2, on_retry=on_retry), sleep=sleep))

        on_retry.assert_called_once_with(1, error, delays[0])

    def test_custom_classifier(self):
        """Test that a custom classifier decides what is retried."""
        operation = AsyncMock(side_effect=[KeyError("flaky"), "ok"])
        sleep, _ = recording_sleep()
        options = RetryOptions(max_retries=1, retryable_classifier=lambda e: isinstance(e, KeyError))

        assert asyncio.run(with_retry(operation, options, sleep=sleep)) == "ok"


class TestHelpers:
    """Test presets and wrappers."""

    def test_with_options_copies_preset(self):
        """Test that overriding a preset leaves the preset unchanged."""
        options = with_options(FAST_RETRY_OPTIONS, max_retries=0)

        assert options.max_retries == 0
        assert options.base_delay == FAST_RETRY_OPTIONS.base_delay
        assert FAST_RETRY_OPTIONS.max_retries != 0

    def test_make_retryable_passes_arguments(self):
        """Test that a wrapped function gets its arguments on every attempt."""
        async def add(a, b):
            return a + b

        wrapped = make_retryable(add, RetryOptions(max_retries=0))

        assert asyncio.run(wrapped(2, b=3)) == 5
        assert wrapped.__name__ == "add"
