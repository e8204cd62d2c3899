"""
Retry with exponential backoff and jitter for transient generation failures.
"""
import asyncio
import logging
import random
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, List, Optional

from core.config import (
    RETRY_MAX_RETRIES,
    RETRY_BASE_DELAY,
    RETRY_MAX_DELAY,
    RETRY_CRITICAL_MAX_RETRIES,
    RETRY_CRITICAL_BASE_DELAY,
    RETRY_CRITICAL_MAX_DELAY,
    RETRY_FAST_MAX_RETRIES,
    RETRY_FAST_BASE_DELAY,
    RETRY_FAST_MAX_DELAY,
    RETRYABLE_STATUS_CODES,
)

logger = logging.getLogger(__name__)

RETRYABLE_ERROR_CODES = ("ECONNRESET", "ETIMEDOUT", "ENOTFOUND", "ECONNREFUSED")
RETRYABLE_MESSAGES = ("rate limit", "timeout")
JITTER_RATIO = 0.25


@dataclass
class RetryOptions:
    """Backoff settings. Delays are in seconds."""
    max_retries: int = RETRY_MAX_RETRIES
    base_delay: float = RETRY_BASE_DELAY
    max_delay: float = RETRY_MAX_DELAY
    retryable_status_codes: List[int] = field(default_factory=lambda: list(RETRYABLE_STATUS_CODES))
    retryable_classifier: Optional[Callable[[BaseException], bool]] = None
    on_retry: Optional[Callable[[int, BaseException, float], None]] = None


CRITICAL_RETRY_OPTIONS = RetryOptions(
    max_retries=RETRY_CRITICAL_MAX_RETRIES,
    base_delay=RETRY_CRITICAL_BASE_DELAY,
    max_delay=RETRY_CRITICAL_MAX_DELAY,
)

FAST_RETRY_OPTIONS = RetryOptions(
    max_retries=RETRY_FAST_MAX_RETRIES,
    base_delay=RETRY_FAST_BASE_DELAY,
    max_delay=RETRY_FAST_MAX_DELAY,
)


def calculate_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    rand: Callable[[], float] = random.random,
) -> float:
    """base * 2^attempt with +/-25% jitter, capped at max_delay."""
    exponential = base_delay * (2 ** attempt)
    jitter = exponential * JITTER_RATIO * (rand() * 2 - 1)
    return max(0.0, min(exponential + jitter, max_delay))


def get_status_code(error: BaseException) -> Optional[int]:
    """Status code carried by an error, if any."""
    for attr in ("status_code", "status"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value

    response = getattr(error, "response", None)
    if response is not None:
        value = getattr(response, "status_code", None)
        if isinstance(value, int):
            return value

    code = getattr(error, "code", None)
    if isinstance(code, int):
        return code
    return None


def is_retryable_error(
    error: BaseException,
    retryable_status_codes: Optional[List[int]] = None,
) -> bool:
    """Classify an error as transient."""
    codes = RETRYABLE_STATUS_CODES if retryable_status_codes is None else retryable_status_codes

    status = get_status_code(error)
    if status is not None and status in codes:
        return True

    code = getattr(error, "code", None)
    if isinstance(code, str) and code.upper() in RETRYABLE_ERROR_CODES:
        return True

    if isinstance(error, (ConnectionResetError, TimeoutError, asyncio.TimeoutError)):
        return True

    message = str(error).lower()
    return any(fragment in message for fragment in RETRYABLE_MESSAGES)


async def with_retry(
    operation: Callable[[], Awaitable[Any]],
    options: Optional[RetryOptions] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> Any:
    """
    Run operation, retrying transient failures.

    Makes at most max_retries + 1 attempts. Non-retryable errors are
    raised immediately; the last error is raised once retries run out.
    """
    options = options or RetryOptions()
    classifier = options.retryable_classifier or (
        lambda e: is_retryable_error(e, options.retryable_status_codes)
    )

    last_error: Optional[BaseException] = None
    for attempt in range(options.max_retries + 1):
        try:
            return await operation()
        except Exception as e:
            last_error = e

            if attempt >= options.max_retries:
                break

            if not classifier(e):
                raise

            delay = calculate_delay(attempt, options.base_delay, options.max_delay)
            logger.warning(
                f"Retry attempt {attempt + 1}/{options.max_retries} after {delay:.2f}s: {e}"
            )
            if options.on_retry:
                options.on_retry(attempt + 1, e, delay)
            await sleep(delay)

    raise last_error


def make_retryable(
    fn: Callable[..., Awaitable[Any]],
    options: Optional[RetryOptions] = None,
) -> Callable[..., Awaitable[Any]]:
    """Wrap an async function so every call goes through with_retry."""

    async def wrapper(*args, **kwargs):
        return await with_retry(lambda: fn(*args, **kwargs), options)

    wrapper.__name__ = getattr(fn, "__name__", "retryable")
    return wrapper


def with_options(base: RetryOptions, **overrides) -> RetryOptions:
    """Copy of a preset with some fields replaced."""
    return replace(base, **overrides)
