"""
API tests for the operator, content and quality routes.
"""
import asyncio
import json
import pytest
from unittest.mock import AsyncMock, Mock, patch
from fastapi.testclient import TestClient

from api.main import app, circuit_open_handler
from core.errors import CircuitOpenError
from core.llm_client import GenerationResult
from core.llm_logger import LLMCallLogger
from core.registry import create_registry

EQUITY_QUESTION = {
    "prompt": "What is the cost of equity for a firm?",
    "options": [
        "The return shareholders require",
        "The coupon rate on bonds",
        "The corporate tax rate",
        "The inflation rate",
    ],
    "correct_option_index": 0,
    "source_reference": "The cost of equity is the return required by shareholders",
}

ADMIN_QUESTION = {
    "prompt": "How many parts does the final exam have?",
    "options": ["One", "Two", "Three", "Four"],
    "correct_option_index": 1,
}

CHAPTER_TEXT = (
    "The cost of equity is the return required by shareholders. "
    "Beta measures the systematic risk of a stock relative to the market."
)


@pytest.fixture
def registry():
    client = Mock()
    client.generate = AsyncMock(return_value=GenerationResult("not json"))
    client.aclose = AsyncMock()
    registry = create_registry(client=client, call_logger=LLMCallLogger())
    app.state.registry = registry
    yield registry
    app.state.registry = None


@pytest.fixture
def api(registry):
    return TestClient(app)


class TestRoot:
    """Test service endpoints."""

    def test_health(self, api):
        """Test the health endpoint."""
        response = api.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_root(self, api):
        """Test the root endpoint."""
        assert api.get("/").json()["message"] == "Quizforge API"

    @patch("api.main.VALIDATE_CONFIG_ON_STARTUP", False)
    def test_startup_keeps_existing_registry(self, registry):
        """Test that startup reuses a registry already on app state and shutdown closes its client."""
        with TestClient(app) as client:
            assert client.get("/health").status_code == 200
            assert app.state.registry is registry

        registry.client.aclose.assert_awaited_once()


class TestAdminRoutes:
    """Test reliability statistics and resets."""

    def test_reliability_stats(self, api):
        """Test that stats list every breaker, cache and call aggregate."""
        body = api.get("/api/v1/admin/reliability").json()

        assert set(body["breakers"]) == {"text", "vision"}
        assert body["breakers"]["text"]["state"] == "closed"
        assert set(body["caches"]) == {"classification", "facts", "generation"}
        assert "total_calls" in body["llm_calls"]

    def test_reset_breaker(self, api, registry):
        """Test that an open breaker is closed and its counter cleared."""
        for _ in range(5):
            registry.breaker("text").record_failure()

        response = api.post("/api/v1/admin/breakers/text/reset")

        assert response.status_code == 200
        assert response.json()["state"] == "closed"
        assert registry.breaker("text").get_stats()["failure_count"] == 0

    def test_reset_unknown_breaker(self, api):
        """Test that an unknown breaker name gives 404."""
        assert api.post("/api/v1/admin/breakers/audio/reset").status_code == 404

    def test_cleanup_caches(self, api):
        """Test that cleanup reports removals per cache."""
        body = api.post("/api/v1/admin/caches/cleanup").json()
        assert body == {"removed": {"classification": 0, "facts": 0, "generation": 0}}

    def test_clear_cache(self, api, registry):
        """Test that clearing a cache empties it."""
        registry.cache("generation").set("key", "value")

        response = api.post("/api/v1/admin/caches/generation/clear")

        assert response.status_code == 200
        assert response.json()["size"] == 0
        assert registry.cache("generation").get("key") is None

    def test_clear_unknown_cache(self, api):
        """Test that an unknown cache name gives 404."""
        assert api.post("/api/v1/admin/caches/embeddings/clear").status_code == 404


class TestContentRoutes:
    """Test segmentation, validation and generation."""

    def test_segment(self, api):
        """Test that chapters come back in order with their own text."""
        intro = "Introduction\n" + "Markets bring buyers and sellers together to trade goods. " * 12
        pricing = "Pricing Power\n" + "Firms with pricing power can set prices above marginal cost. " * 12

        response = api.post("/api/v1/content/segment", json={
            "text": intro + "\n\n" + pricing,
            "chapters": [{"index": 1, "title": "Introduction"}, {"index": 2, "title": "Pricing Power"}],
            "min_chunk_size": 50,
        })

        assert response.status_code == 200
        chapters = response.json()["chapters"]
        assert [c["index"] for c in chapters] == [1, 2]
        assert chapters[0]["start_position"] <= chapters[1]["start_position"]
        assert "pricing power" in chapters[1]["text"].lower()

    def test_segment_text_too_short(self, api):
        """Test that text shorter than the chapter count is rejected."""
        response = api.post("/api/v1/content/segment", json={
            "text": "abc",
            "chapters": [{"index": i, "title": f"Chapter {i}"} for i in range(1, 6)],
        })

        assert response.status_code == 422

    def test_validate_questions(self, api):
        """Test that validation splits valid, administrative and rejected questions."""
        response = api.post("/api/v1/content/questions/validate", json={
            "questions": [EQUITY_QUESTION, ADMIN_QUESTION, {"prompt": "Short", "options": ["x"]}],
        })

        assert response.status_code == 200
        body = response.json()
        assert [q["prompt"] for q in body["valid_questions"]] == [EQUITY_QUESTION["prompt"]]
        assert body["administrative_removed"][0]["reason"] == "Matches administrative pattern"
        assert len(body["rejected_questions"]) == 1
        assert body["rejected_questions"][0]["errors"]
        assert body["stats"]["administrative_removed"] == 1
        assert body["stats"]["rejected"] == 1

    def test_generate_questions_falls_back(self, api):
        """Test that an unparseable generation response yields fallback questions."""
        response = api.post("/api/v1/content/questions/generate", json={
            "chapter_title": "Cost of Capital",
            "chapter_text": CHAPTER_TEXT,
            "count": 5,
        })

        assert response.status_code == 200
        body = response.json()
        assert body["used_fallback"] is True
        assert body["title"] == "Cost of Capital"
        assert len(body["questions"]) == 5
        for question in body["questions"]:
            assert len(question["options"]) == 4

    def test_generate_questions(self, api, registry):
        """Test that parsed generation output is returned without fallback."""
        registry.client.generate.return_value = GenerationResult(json.dumps({"questions": [EQUITY_QUESTION]}))

        response = api.post("/api/v1/content/questions/generate", json={
            "chapter_title": "Cost of Capital",
            "chapter_text": CHAPTER_TEXT,
        })

        body = response.json()
        assert body["used_fallback"] is False
        assert [q["prompt"] for q in body["questions"]] == [EQUITY_QUESTION["prompt"]]
        assert body["stats"]["generated"] == 1


class TestQualityRoutes:
    """Test course audits."""

    def test_audit_without_source(self, api):
        """Test that an audit without enough source text is unscored."""
        response = api.post("/api/v1/quality/audit", json={
            "id": "course_1",
            "title": "Corporate Finance",
            "source_text": "Too short",
            "chapters": [{"title": "Cost of Capital", "questions": [EQUITY_QUESTION]}],
        })

        assert response.status_code == 200
        body = response.json()
        assert body["overall_score"] == -1
        assert body["rating"] is None

    def test_audit_with_source(self, api):
        """Test that an audit with source text is scored and rated."""
        source = CHAPTER_TEXT * 3
        response = api.post("/api/v1/quality/audit", json={
            "id": "course_1",
            "source_text": source,
            "chapters": [{"index": 1, "title": "Cost of Capital", "questions": [EQUITY_QUESTION]}],
        })

        body = response.json()
        assert 0 <= body["overall_score"] <= 100
        assert body["rating"] is not None


class TestErrorHandlers:
    """Test exception-to-response mapping."""

    def test_circuit_open_maps_to_503(self):
        """Test that an open circuit maps to 503 with a rounded-up Retry-After."""
        response = asyncio.run(circuit_open_handler(Mock(), CircuitOpenError("generation-text", 60.0, 12.5)))

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "13"
