"""
Semantic validation of generated questions against extracted source facts.

Cheap keyword matching decides most questions; only unmatched ones are
sent to the model for adjudication.
"""
import logging
from typing import Any, Dict, List, Optional

from core.config import (
    MODEL_VALIDATION,
    TEMPERATURE_VALIDATION,
    MAX_TOKENS_VALIDATION,
    TRUNCATE_SOURCE_TEXT,
    SEMANTIC_MIN_CONFIDENCE,
    MAX_CONCURRENT_VALIDATIONS,
)
from core.registry import ReliabilityRegistry
from models.fact_models import (
    Fact,
    SemanticBatchResult,
    SemanticBatchStats,
    SemanticValidationResult,
)
from models.question_models import COGNITIVE_LEVELS, Question, normalize_question
from services.processing.utils import parse_json_response
from services.reliability.retry import RetryOptions
from services.reliability.waves import run_in_waves

logger = logging.getLogger(__name__)

STRONG_MATCH_CONFIDENCE = 0.80
WEAK_MATCH_CONFIDENCE = 0.70
NO_FACTS_CONFIDENCE = 0.5
UNAVAILABLE_CONFIDENCE = 0.5
ERROR_CONFIDENCE = 0.3
MIN_REFERENCE_LENGTH = 15
STATEMENT_OVERLAP_RATIO = 0.3
TRUE_VERDICTS = {"true", "yes", "valid", "1"}


def _words(text: str) -> set:
    return {w for w in text.lower().split() if len(w) > 3}


def find_matching_facts(question_text: str, correct_answer: str, facts: List[Fact]) -> List[str]:
    """
    Ids of facts sharing at least 2 keywords with the question and answer,
    or whose statement overlaps them by at least 30%.
    """
    question_words = _words(f"{question_text} {correct_answer}")
    lower_question = question_text.lower()
    lower_answer = correct_answer.lower()

    matched = []
    for fact in facts:
        keyword_matches = [
            kw for kw in fact.keywords
            if kw.lower() in question_words
            or kw.lower() in lower_question
            or kw.lower() in lower_answer
        ]

        statement_words = _words(fact.statement)
        overlap = len(question_words & statement_words)
        ratio = overlap / len(question_words) if question_words else 0.0

        if len(keyword_matches) >= 2 or ratio >= STATEMENT_OVERLAP_RATIO:
            matched.append(fact.id)
    return matched


class SemanticValidator:
    """Checks that a question's stated answer is grounded in the source."""

    def __init__(
        self,
        registry: ReliabilityRegistry,
        min_confidence: float = SEMANTIC_MIN_CONFIDENCE,
    ):
        self.registry = registry
        self.min_confidence = min_confidence

    async def validate_question(
        self,
        raw: Any,
        facts: List[Fact],
        source_text: str,
    ) -> SemanticValidationResult:
        question = normalize_question(raw)
        result = await self._validate(question, facts, source_text)

        # Low confidence never passes, whatever the heuristics said
        if result.confidence < self.min_confidence:
            result.is_valid = False
        return result

    async def _validate(
        self,
        question: Question,
        facts: List[Fact],
        source_text: str,
    ) -> SemanticValidationResult:
        if not facts:
            return SemanticValidationResult(
                is_valid=True,
                confidence=NO_FACTS_CONFIDENCE,
                issues=["No facts available for validation"],
            )

        correct_answer = question.correct_option_text()
        reference = question.source_reference or ""
        matched = find_matching_facts(question.prompt, correct_answer, facts)

        if matched and len(reference) > MIN_REFERENCE_LENGTH:
            return SemanticValidationResult(
                is_valid=True,
                confidence=STRONG_MATCH_CONFIDENCE,
                matched_fact_ids=matched,
            )

        if matched:
            return SemanticValidationResult(
                is_valid=True,
                confidence=WEAK_MATCH_CONFIDENCE,
                matched_fact_ids=matched,
                issues=["Weak fact match - consider reviewing"] if len(matched) < 2 else [],
            )

        return await self._adjudicate(question, correct_answer, reference, source_text)

    async def _adjudicate(
        self,
        question: Question,
        correct_answer: str,
        reference: str,
        source_text: str,
    ) -> SemanticValidationResult:
        """Ask the model whether the answer is supported and the distractors wrong."""
        options = "\n".join(
            f"{chr(ord('A') + i)}. {option}" for i, option in enumerate(question.options)
        )
        prompt = self.registry.prompts.render(
            "answer_adjudication",
            source_text=(source_text or "")[:TRUNCATE_SOURCE_TEXT],
            prompt=question.prompt,
            options=options,
            correct_answer=correct_answer,
        )
        has_reference = len(reference) > MIN_REFERENCE_LENGTH

        try:
            response = await self.registry.generate(
                "validate_question",
                prompt,
                model=MODEL_VALIDATION,
                temperature=TEMPERATURE_VALIDATION,
                max_tokens=MAX_TOKENS_VALIDATION,
                retry_options=RetryOptions(max_retries=1),
                fallback=lambda: None,
            )
        except Exception as e:
            logger.error(f"Semantic adjudication failed: {e}")
            return SemanticValidationResult(
                is_valid=has_reference,
                confidence=ERROR_CONFIDENCE,
                issues=["Validation error occurred"],
            )

        if response is None:
            return SemanticValidationResult(
                is_valid=has_reference,
                confidence=UNAVAILABLE_CONFIDENCE,
                issues=["Validation service unavailable"],
            )

        parsed = parse_json_response(response)
        if not isinstance(parsed, dict):
            logger.warning("Adjudication response was not valid JSON")
            return SemanticValidationResult(
                is_valid=has_reference,
                confidence=ERROR_CONFIDENCE,
                issues=["Validation response could not be parsed"],
            )

        return SemanticValidationResult(
            is_valid=_verdict(parsed.get("is_valid", True)),
            confidence=_clamp(parsed.get("confidence"), default=0.7),
            issues=[str(i) for i in parsed.get("issues") or []],
            suggested_fix=parsed.get("suggestion"),
        )

    async def validate_batch(
        self,
        questions: List[Any],
        facts: List[Fact],
        source_text: str,
        max_concurrent: int = MAX_CONCURRENT_VALIDATIONS,
    ) -> SemanticBatchResult:
        """Validate questions in bounded waves and keep those passing min_confidence."""
        normalized = [normalize_question(q) for q in questions]
        results: List[SemanticValidationResult] = await run_in_waves(
            normalized,
            lambda q: self.validate_question(q, facts, source_text),
            max_concurrent,
        )

        batch = SemanticBatchResult(results=results)
        for question, result in zip(normalized, results):
            if result.is_valid and result.confidence >= self.min_confidence:
                batch.valid_questions.append(question)
            else:
                batch.invalid_questions.append({"question": question, "result": result})

        avg = sum(r.confidence for r in results) / len(results) if results else 0.0
        batch.stats = SemanticBatchStats(
            total=len(normalized),
            valid=len(batch.valid_questions),
            invalid=len(batch.invalid_questions),
            avg_confidence=avg,
        )
        logger.info(
            f"Semantic validation: {batch.stats.valid}/{batch.stats.total} questions passed "
            f"(avg confidence: {avg * 100:.1f}%)"
        )
        return batch


def _clamp(value: Any, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return min(1.0, max(0.0, number))


def _verdict(value: Any) -> bool:
    """Read a model verdict. Strings are parsed, anything unrecognised fails."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in TRUE_VERDICTS
    if isinstance(value, (int, float)):
        return value == 1
    return False


def generate_quality_report(
    chapter_title: str,
    facts: List[Fact],
    questions: List[Any],
    results: List[SemanticValidationResult],
) -> Dict[str, Any]:
    """Summary of how well a chapter's questions cover its facts."""
    normalized = [normalize_question(q) for q in questions]
    valid_count = sum(1 for r in results if r.is_valid)
    avg_confidence = sum(r.confidence for r in results) / len(results) if results else 0.0

    matched_ids = {fid for r in results for fid in r.matched_fact_ids}
    coverage_by_category: Dict[str, int] = {}
    for fact in facts:
        coverage_by_category.setdefault(fact.category, 0)
        if fact.id in matched_ids:
            coverage_by_category[fact.category] += 1

    distribution = {level: 0 for level in COGNITIVE_LEVELS}
    distribution["unknown"] = 0
    for q in normalized:
        level = q.cognitive_level if q.cognitive_level in COGNITIVE_LEVELS else "unknown"
        distribution[level] += 1

    issues: List[str] = []
    for r in results:
        for issue in r.issues:
            if issue not in issues:
                issues.append(issue)

    recommendations = []
    if avg_confidence < 0.7:
        recommendations.append("Consider regenerating questions with more explicit source references")
    apply_ratio = distribution["apply"] / len(normalized) if normalized else 0.0
    if apply_ratio < 0.15:
        recommendations.append("Add more application-level questions to test deeper understanding")
    if any(f.category == "formula" for f in facts) and not coverage_by_category.get("formula"):
        recommendations.append("Include questions testing formulas and calculations")

    return {
        "chapter_title": chapter_title,
        "fact_count": len(facts),
        "question_count": len(normalized),
        "valid_count": valid_count,
        "avg_confidence": avg_confidence,
        "coverage_by_category": coverage_by_category,
        "cognitive_distribution": distribution,
        "issues": issues[:5],
        "recommendations": recommendations,
    }
