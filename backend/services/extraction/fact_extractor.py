"""
Fact extractor for pulling atomic, verifiable claims out of chapter text.
"""
import logging
from typing import Any, Dict, List, Optional

from core.config import (
    MODEL_FACT_EXTRACTION,
    TEMPERATURE_EXTRACTION,
    MAX_TOKENS_FACT_EXTRACTION,
    TRUNCATE_CHAPTER_TEXT,
)
from core.registry import FACTS_CACHE, ReliabilityRegistry
from models.fact_models import FACT_CATEGORIES, Fact
from services.processing.utils import normalize_for_matching, parse_json_response, truncate_text
from services.reliability.retry import RetryOptions

logger = logging.getLogger(__name__)

LANGUAGE_INSTRUCTIONS = {
    "en": "Write the facts in English.",
    "fr": "Write the facts in French.",
    "de": "Write the facts in German.",
}


class FactExtractor:
    """Extracts grounded facts through the guarded generation path."""

    def __init__(self, registry: ReliabilityRegistry):
        self.registry = registry

    async def extract_facts(
        self,
        source_text: str,
        chapter_title: str,
        language: str = "en",
    ) -> List[Fact]:
        """
        Extract facts from a chapter.

        Generation failures and an open circuit both yield an empty list;
        question generation then proceeds ungrounded.
        """
        if not source_text or not source_text.strip():
            return []

        text = truncate_text(source_text, TRUNCATE_CHAPTER_TEXT)
        prompt = self.registry.prompts.render(
            "fact_extraction",
            chapter_title=chapter_title,
            language_instruction=LANGUAGE_INSTRUCTIONS.get(language.lower(), LANGUAGE_INSTRUCTIONS["en"]),
            source_text=text,
        )

        try:
            response = await self.registry.generate(
                "extract_facts",
                prompt,
                model=MODEL_FACT_EXTRACTION,
                temperature=TEMPERATURE_EXTRACTION,
                max_tokens=MAX_TOKENS_FACT_EXTRACTION,
                retry_options=RetryOptions(max_retries=2),
                cache_name=FACTS_CACHE,
                cache_params={
                    "function": "extract_facts",
                    "text": text,
                    "title": chapter_title,
                    "language": language.lower(),
                    "model": MODEL_FACT_EXTRACTION,
                },
                fallback=lambda: None,
            )
        except Exception as e:
            logger.error(f"Fact extraction failed for '{chapter_title}': {e}")
            return []

        if response is None:
            logger.warning(f"Fact extraction unavailable for '{chapter_title}', continuing without facts")
            return []

        facts = parse_facts(response, text)
        logger.info(f"Extracted {len(facts)} verifiable facts from '{chapter_title}'")
        return facts


def parse_facts(response: str, source_text: str) -> List[Fact]:
    """
    Build Fact records from a model response.

    Facts whose quote is not a literal excerpt of the source are dropped.
    """
    parsed = parse_json_response(response)
    if not isinstance(parsed, dict) or "facts" not in parsed:
        # Bare array, or the object match landed on a single array item
        array = parse_json_response(response, expect="array")
        if array is not None:
            parsed = {"facts": array}

    raw_facts = parsed.get("facts", []) if isinstance(parsed, dict) else []
    normalized_source = normalize_for_matching(source_text)

    facts: List[Fact] = []
    for raw in raw_facts:
        if not isinstance(raw, dict):
            continue
        fact = _build_fact(raw, len(facts))
        if not fact.statement:
            continue
        if not _is_literal_excerpt(fact.source_quote, normalized_source):
            logger.debug(f"Dropping fact with non-literal quote: {fact.source_quote[:60]}")
            continue
        facts.append(fact)
    return facts


def _build_fact(raw: Dict[str, Any], index: int) -> Fact:
    category = str(raw.get("category") or "definition").lower()
    if category not in FACT_CATEGORIES:
        category = "definition"

    try:
        confidence = float(raw.get("confidence") or 0.5)
    except (TypeError, ValueError):
        confidence = 0.5

    keywords = raw.get("keywords") or []
    if not isinstance(keywords, list):
        keywords = []

    return Fact(
        id=f"fact_{index}",
        statement=str(raw.get("statement") or "").strip(),
        source_quote=str(raw.get("source_quote") or "").strip(),
        category=category,
        confidence=min(1.0, max(0.0, confidence)),
        keywords=[str(k) for k in keywords],
    )


def _is_literal_excerpt(quote: str, normalized_source: str) -> bool:
    if not quote:
        return False
    # Quotes often carry trailing punctuation or ellipses
    core = normalize_for_matching(quote).strip(" .…\"'")
    return bool(core) and core in normalized_source
