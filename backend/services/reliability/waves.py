"""
Bounded-concurrency waves: fixed-size groups dispatched together, each
group finishing before the next one starts.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def run_in_waves(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[Any]],
    wave_size: int,
) -> List[Any]:
    """
    Apply worker to every item, at most wave_size at a time.

    Results keep the input order. Exceptions from a worker propagate
    to the caller.
    """
    if wave_size < 1:
        raise ValueError(f"wave_size must be >= 1, got {wave_size}")

    results: List[Any] = []
    for start in range(0, len(items), wave_size):
        wave = items[start:start + wave_size]
        logger.debug(f"Dispatching wave {start // wave_size + 1} ({len(wave)} items)")
        results.extend(await asyncio.gather(*(worker(item) for item in wave)))
    return results
