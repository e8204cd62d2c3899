"""
Unit tests for per-call generation records.
"""
import asyncio
import pytest

from core.errors import GenerationError
from core.llm_logger import LLMCallLogger, with_logging


class TestLogContext:
    """Test a single call record."""

    def test_failure_records_status_code(self):
        """Test that an HTTP status on the error becomes the error code."""
        logger = LLMCallLogger()
        ctx = logger.create_context("generate_questions", "test-model")

        entry = ctx.failure(GenerationError("unavailable", status_code=503))

        assert entry.success is False
        assert entry.error_code == "503"
        assert logger.get_recent() == [entry]

    def test_first_outcome_is_kept(self):
        """Test that a finished record is neither flipped nor logged twice."""
        logger = LLMCallLogger()
        ctx = logger.create_context("generate_questions", "test-model")

        ctx.failure(RuntimeError("down"))
        ctx.success()

        assert len(logger.get_recent()) == 1
        assert logger.get_recent()[0].success is False
        assert logger.get_recent()[0].error == "down"


class TestWithLogging:
    """Test the async logging wrapper."""

    def test_success_and_metadata(self):
        """Test that a returning call is recorded with its tokens and metadata."""
        logger = LLMCallLogger()

        async def call(ctx):
            ctx.set_metadata(breaker="generation-text")
            ctx.set_tokens(12, 8)
            return "text"

        assert asyncio.run(with_logging(logger, "extract_facts", "test-model", call)) == "text"

        entry = logger.get_recent()[-1]
        assert entry.success is True
        assert entry.total_tokens == 20
        assert entry.metadata == {"breaker": "generation-text"}

    def test_exception_is_logged_and_reraised(self):
        """Test that a raising call is recorded as a failure before propagating."""
        logger = LLMCallLogger()

        async def call(ctx):
            raise ValueError("bad json")

        with pytest.raises(ValueError):
            asyncio.run(with_logging(logger, "extract_facts", "test-model", call))

        entry = logger.get_recent()[-1]
        assert entry.success is False
        assert entry.error_code == "ValueError"

    def test_stats_aggregate_by_function(self):
        """Test that stats group calls and failures per function name."""
        logger = LLMCallLogger()
        logger.create_context("extract_facts", "m").success()
        logger.create_context("extract_facts", "m").failure(RuntimeError("x"))
        logger.create_context("generate_questions", "m").success()

        stats = logger.get_stats()

        assert stats["total_calls"] == 3
        assert stats["by_function"]["extract_facts"] == {"calls": 2, "failures": 1, "tokens": 0}
        assert stats["errors"] == {"RuntimeError": 1}
