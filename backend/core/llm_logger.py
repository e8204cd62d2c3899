"""
Structured per-call records for generation requests.

One LLMLogEntry is emitted per call: enough to rebuild cost and reliability
metrics without replaying anything.
"""
import logging
import random
import threading
import time
from collections import deque
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional

from core.config import LLM_LOG_MAX_ENTRIES

call_logger = logging.getLogger("llm.calls")


@dataclass
class LLMLogEntry:
    request_id: str
    function: str
    model: str
    timestamp: str
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    latency_ms: int = 0
    success: bool = False
    error: Optional[str] = None
    error_code: Optional[str] = None
    retry_count: int = 0
    cache_hit: bool = False
    fallback_used: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def generate_request_id() -> str:
    return f"llm_{int(time.time() * 1000)}_{random.getrandbits(32):08x}"


class LLMLogContext:
    """Mutable record for one in-flight call; finish with success() or failure()."""

    def __init__(self, logger: "LLMCallLogger", function: str, model: str):
        self._logger = logger
        self._started = time.monotonic()
        self._finished = False
        self.entry = LLMLogEntry(
            request_id=generate_request_id(),
            function=function,
            model=model,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )

    @property
    def request_id(self) -> str:
        return self.entry.request_id

    def set_tokens(self, input_tokens: int, output_tokens: int):
        self.entry.input_tokens = input_tokens
        self.entry.output_tokens = output_tokens
        self.entry.total_tokens = input_tokens + output_tokens

    def set_cache_hit(self, hit: bool = True):
        self.entry.cache_hit = hit

    def set_fallback_used(self, used: bool = True):
        self.entry.fallback_used = used

    def increment_retry(self, *args):
        # Signature fits RetryOptions.on_retry
        self.entry.retry_count += 1

    def set_metadata(self, **metadata):
        self.entry.metadata.update(metadata)

    def success(self) -> LLMLogEntry:
        if self._finished:
            return self.entry
        self.entry.success = True
        return self._finish()

    def failure(self, error: BaseException, code: Optional[str] = None) -> LLMLogEntry:
        if self._finished:
            return self.entry
        self.entry.success = False
        self.entry.error = str(error)
        status = getattr(error, "status_code", None)
        self.entry.error_code = code or getattr(error, "code", None) or (
            str(status) if status is not None else type(error).__name__
        )
        return self._finish()

    def _finish(self) -> LLMLogEntry:
        self.entry.latency_ms = int((time.monotonic() - self._started) * 1000)
        self._finished = True
        self._logger.record(self.entry)
        return self.entry


class LLMCallLogger:
    """Bounded in-memory history of call records plus aggregates."""

    def __init__(self, max_entries: int = LLM_LOG_MAX_ENTRIES):
        self.entries: Deque[LLMLogEntry] = deque(maxlen=max_entries)
        self._lock = threading.Lock()

    def create_context(self, function: str, model: str) -> LLMLogContext:
        return LLMLogContext(self, function, model)

    def record(self, entry: LLMLogEntry):
        with self._lock:
            self.entries.append(entry)

        extra = {"llm_call": entry.to_dict()}
        if entry.success:
            level = logging.DEBUG if entry.cache_hit else logging.INFO
            call_logger.log(
                level,
                f"{entry.request_id} {entry.function} [{entry.model}] ok "
                f"{entry.latency_ms}ms tokens={entry.total_tokens} retries={entry.retry_count} "
                f"cache_hit={entry.cache_hit} fallback={entry.fallback_used}",
                extra=extra,
            )
        else:
            call_logger.error(
                f"{entry.request_id} {entry.function} [{entry.model}] failed "
                f"{entry.latency_ms}ms code={entry.error_code} retries={entry.retry_count} "
                f"fallback={entry.fallback_used}: {entry.error}",
                extra=extra,
            )

    def get_recent(self, limit: int = 50) -> List[LLMLogEntry]:
        with self._lock:
            return list(self.entries)[-limit:]

    def get_stats(self, since: Optional[str] = None) -> Dict[str, Any]:
        """Aggregate metrics, optionally only for entries at or after an ISO timestamp."""
        with self._lock:
            entries = list(self.entries)
        if since:
            entries = [e for e in entries if e.timestamp >= since]

        total = len(entries)
        successful = sum(1 for e in entries if e.success)
        by_function: Dict[str, Dict[str, int]] = {}
        errors: Dict[str, int] = {}

        for e in entries:
            bucket = by_function.setdefault(e.function, {"calls": 0, "failures": 0, "tokens": 0})
            bucket["calls"] += 1
            bucket["tokens"] += e.total_tokens
            if not e.success:
                bucket["failures"] += 1
                key = e.error_code or "unknown"
                errors[key] = errors.get(key, 0) + 1

        total_tokens = sum(e.total_tokens for e in entries)
        return {
            "total_calls": total,
            "successful_calls": successful,
            "failed_calls": total - successful,
            "success_rate": successful / total if total else 0.0,
            "total_input_tokens": sum(e.input_tokens for e in entries),
            "total_output_tokens": sum(e.output_tokens for e in entries),
            "total_tokens": total_tokens,
            "avg_tokens_per_call": total_tokens / total if total else 0.0,
            "avg_latency_ms": sum(e.latency_ms for e in entries) / total if total else 0.0,
            "cache_hit_rate": sum(1 for e in entries if e.cache_hit) / total if total else 0.0,
            "fallback_rate": sum(1 for e in entries if e.fallback_used) / total if total else 0.0,
            "total_retries": sum(e.retry_count for e in entries),
            "by_function": by_function,
            "errors": errors,
        }

    def clear(self):
        with self._lock:
            self.entries.clear()


async def with_logging(
    logger: LLMCallLogger,
    function: str,
    model: str,
    fn: Callable[[LLMLogContext], Awaitable[Any]],
) -> Any:
    """Run fn with a fresh context, closing it as success or failure."""
    ctx = logger.create_context(function, model)
    try:
        result = await fn(ctx)
    except Exception as e:
        ctx.failure(e)
        raise
    ctx.success()
    return result
