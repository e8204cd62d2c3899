"""
In-memory LRU cache with per-entry TTL for generation results.
"""
import hashlib
import json
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_MAX_SIZE = 500
DEFAULT_TTL = 24 * 3600  # seconds


@dataclass
class CacheEntry:
    """A memoized value."""
    value: Any
    created_at: float
    ttl: float
    hits: int = 0

    def is_expired(self, now: float) -> bool:
        return now > self.created_at + self.ttl


class LLMCache:
    """
    Insertion-ordered map with LRU eviction.

    Expired entries are purged lazily before every read and write.
    Concurrent set() on the same key is last-write-wins.
    """

    def __init__(
        self,
        name: str = "default",
        max_size: int = DEFAULT_MAX_SIZE,
        ttl: float = DEFAULT_TTL,
        on_evict: Optional[Callable[[str, Any], None]] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.name = name
        self.max_size = max_size
        self.default_ttl = ttl
        self.on_evict = on_evict
        self._clock = clock
        self._lock = threading.RLock()
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()

        self.hits = 0
        self.misses = 0
        self.evictions = 0

    @staticmethod
    def generate_key(params: Dict[str, Any]) -> str:
        """Stable 16-char digest of key-sorted JSON."""
        canonical = json.dumps(params, sort_keys=True, ensure_ascii=False, default=str)
        return hashlib.sha256(canonical.encode()).hexdigest()[:16]

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            self._purge_expired()
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                logger.debug(f"[cache:{self.name}] miss {key[:8]}")
                return None

            self._entries.move_to_end(key)
            entry.hits += 1
            self.hits += 1
            logger.debug(f"[cache:{self.name}] hit {key[:8]}")
            return entry.value

    def set(self, key: str, value: Any, ttl: Optional[float] = None):
        with self._lock:
            self._purge_expired()
            if key in self._entries:
                del self._entries[key]

            while len(self._entries) >= self.max_size and self._entries:
                old_key, old_entry = self._entries.popitem(last=False)
                self.evictions += 1
                if self.on_evict:
                    self.on_evict(old_key, old_entry.value)

            self._entries[key] = CacheEntry(
                value=value,
                created_at=self._clock(),
                ttl=self.default_ttl if ttl is None else ttl,
            )

    def has(self, key: str) -> bool:
        with self._lock:
            self._purge_expired()
            return key in self._entries

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self):
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0
            self.evictions = 0

    def cleanup(self) -> int:
        """Remove expired entries, returning how many were removed."""
        with self._lock:
            return self._purge_expired()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            total = self.hits + self.misses
            return {
                "name": self.name,
                "size": len(self._entries),
                "max_size": self.max_size,
                "hits": self.hits,
                "misses": self.misses,
                "evictions": self.evictions,
                "hit_rate": self.hits / total if total > 0 else 0.0,
            }

    def _purge_expired(self) -> int:
        now = self._clock()
        expired = [k for k, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        return len(expired)


async def with_cache(
    cache: LLMCache,
    key: str,
    fn: Callable[[], Awaitable[Any]],
    ttl: Optional[float] = None,
) -> Any:
    """Return the cached value for key, computing and storing it on a miss."""
    cached = cache.get(key)
    if cached is not None:
        return cached

    result = await fn()
    cache.set(key, result, ttl)
    return result


def make_cached(
    cache: LLMCache,
    fn: Callable[..., Awaitable[Any]],
    key_fn: Optional[Callable[..., str]] = None,
    ttl: Optional[float] = None,
) -> Callable[..., Awaitable[Any]]:
    """Wrap an async function with the cache, keyed on its arguments by default."""

    async def wrapper(*args, **kwargs):
        if key_fn:
            key = key_fn(*args, **kwargs)
        else:
            key = LLMCache.generate_key({"args": list(args), "kwargs": kwargs})
        return await with_cache(cache, key, lambda: fn(*args, **kwargs), ttl)

    wrapper.__name__ = getattr(fn, "__name__", "cached")
    return wrapper
