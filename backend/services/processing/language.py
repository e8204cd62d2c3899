"""
Course language detection: a function-word heuristic, with a model
check when the heuristic is inconclusive.
"""
import logging
import re
from dataclasses import dataclass
from typing import Dict

from core.config import (
    MODEL_FAST,
    TEMPERATURE_LANGUAGE_DETECTION,
    MAX_TOKENS_LANGUAGE_DETECTION,
)
from core.registry import CLASSIFICATION_CACHE, ReliabilityRegistry
from services.reliability.retry import FAST_RETRY_OPTIONS
from services.validation.lexicon import DEFAULT_LOCALE, get_lexicon, supported_locales

logger = logging.getLogger(__name__)

MIN_CONFIDENCE = 0.6
SAMPLE_CHARS = 2000


@dataclass
class LanguageGuess:
    language: str
    confidence: float
    method: str  # heuristic | model


def detect_language_heuristic(text: str) -> LanguageGuess:
    """Share of function words belonging to the best-scoring locale."""
    words = re.findall(r'\w+', text[:SAMPLE_CHARS].lower())
    counts: Dict[str, int] = {}
    for locale in supported_locales():
        indicators = set(get_lexicon(locale).get("language_indicators", []))
        counts[locale] = sum(1 for w in words if w in indicators)

    total = sum(counts.values())
    if not total:
        return LanguageGuess(DEFAULT_LOCALE, 0.0, "heuristic")

    best = max(counts, key=lambda locale: counts[locale])
    return LanguageGuess(best, counts[best] / total, "heuristic")


async def detect_language(registry: ReliabilityRegistry, text: str) -> LanguageGuess:
    """
    Heuristic guess, confirmed by the model only when its confidence is
    below 0.6. Any model failure keeps the heuristic answer.
    """
    guess = detect_language_heuristic(text)
    if guess.confidence >= MIN_CONFIDENCE:
        return guess

    sample = text[:SAMPLE_CHARS]
    try:
        response = await registry.generate(
            "detect_language",
            registry.prompts.render("language_detection", text=sample),
            model=MODEL_FAST,
            temperature=TEMPERATURE_LANGUAGE_DETECTION,
            max_tokens=MAX_TOKENS_LANGUAGE_DETECTION,
            retry_options=FAST_RETRY_OPTIONS,
            cache_name=CLASSIFICATION_CACHE,
            cache_params={"function": "detect_language", "text": sample},
            fallback=lambda: None,
        )
    except Exception as e:
        logger.warning(f"Language detection call failed, keeping heuristic '{guess.language}': {e}")
        return guess

    code = (response or "").strip().lower()[:2]
    if code in supported_locales():
        return LanguageGuess(code, 1.0, "model")

    logger.debug(f"Unusable language detection response: {response!r}")
    return guess
