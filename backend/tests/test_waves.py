"""
Unit tests for wave-based concurrency.
"""
import asyncio
import pytest

from services.reliability.waves import run_in_waves


class TestRunInWaves:
    """Test bounded concurrent dispatch."""

    def test_preserves_input_order(self):
        """Test that results follow input order."""
        async def worker(x):
            await asyncio.sleep(0.001 * (5 - x))
            return x * 10

        assert asyncio.run(run_in_waves([1, 2, 3, 4, 5], worker, 2)) == [10, 20, 30, 40, 50]

    def test_never_exceeds_wave_size(self):
        """Test that at most wave_size workers are in flight at once."""
        state = {"active": 0, "peak": 0}

        async def worker(x):
            state["active"] += 1
            state["peak"] = max(state["peak"], state["active"])
            await asyncio.sleep(0.001)
            state["active"] -= 1
            return x

        asyncio.run(run_in_waves(list(range(7)), worker, 3))

        assert state["peak"] == 3

    def test_empty_input(self):
        """Test that empty input gives no results."""
        async def worker(x):
            return x

        assert asyncio.run(run_in_waves([], worker, 3)) == []

    def test_invalid_wave_size(self):
        """Test that a wave size below one is rejected."""
        async def worker(x):
            return x

        with pytest.raises(ValueError):
            asyncio.run(run_in_waves([1], worker, 0))

    def test_worker_error_propagates(self):
        """Test that a worker error propagates."""
        async def worker(x):
            if x == 2:
                raise RuntimeError("worker failed")
            return x

        with pytest.raises(RuntimeError):
            asyncio.run(run_in_waves([1, 2, 3], worker, 2))
