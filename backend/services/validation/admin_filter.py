"""
Administrative-content filter.

Removes questions about course logistics (exam format, schedule, materials,
staff) rather than subject matter.
"""
import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, List, Optional, Pattern, Tuple

from models.question_models import Question, normalize_question
from services.validation.lexicon import compiled_patterns, get_lexicon, per_locale

logger = logging.getLogger(__name__)


@dataclass
class AdminClassification:
    is_admin: bool
    reason: Optional[str] = None
    matched_keyword: Optional[str] = None


@lru_cache(maxsize=None)
def _keyword_patterns() -> Tuple[Tuple[str, str, Pattern], ...]:
    """(locale, keyword, whole-word regex) in locale order."""
    compiled = []
    for locale, keywords in per_locale("admin_keywords"):
        for keyword in keywords:
            pattern = re.compile(rf"(?<!\w){re.escape(keyword.lower())}(?!\w)")
            compiled.append((locale, keyword, pattern))
    return tuple(compiled)


def classify(question_text: str) -> AdminClassification:
    """High-precision patterns first, then locale keyword lists. First match wins."""
    lower = (question_text or "").lower()

    for pattern in compiled_patterns("admin_patterns"):
        if pattern.search(lower):
            return AdminClassification(
                is_admin=True,
                reason="Matches administrative pattern",
                matched_keyword=pattern.pattern,
            )

    for locale, keyword, pattern in _keyword_patterns():
        if pattern.search(lower):
            language = get_lexicon(locale).get("name", locale)
            return AdminClassification(
                is_admin=True,
                reason=f"Contains {language} administrative keyword",
                matched_keyword=keyword,
            )

    return AdminClassification(is_admin=False)


def filter_administrative_questions(questions: List[Any]) -> Dict[str, Any]:
    """
    Drop administrative questions from a batch.

    Returns:
        {
            "filtered": List[Question],
            "removed": List[{question, reason, keyword}],
            "stats": {total, kept, removed}
        }
    """
    filtered: List[Question] = []
    removed: List[Dict[str, Any]] = []

    for raw in questions:
        question = normalize_question(raw)
        text = question.prompt
        check = classify(text)
        if check.is_admin:
            removed.append({
                "question": text[:100] + ("..." if len(text) > 100 else ""),
                "reason": check.reason,
                "keyword": check.matched_keyword,
            })
        else:
            filtered.append(question)

    for item in removed:
        logger.info(f"Removed administrative question ({item['reason']}: {item['keyword']}): {item['question']}")

    return {
        "filtered": filtered,
        "removed": removed,
        "stats": {"total": len(questions), "kept": len(filtered), "removed": len(removed)},
    }
