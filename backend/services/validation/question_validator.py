"""
Structural validation and auto-fixing of generated multiple-choice questions.
"""
import logging
from dataclasses import replace
from typing import Any, Dict, List, Optional

from core.config import BATCH_DUPLICATE_THRESHOLD, OPTION_SIMILARITY_THRESHOLD
from models.question_models import (
    COGNITIVE_LEVELS,
    BatchValidationResult,
    BatchValidationStats,
    Question,
    ValidationIssue,
    ValidationResult,
    normalize_question,
)
from services.processing.utils import jaccard_similarity
from services.validation.ambiguity import detect_ambiguity

logger = logging.getLogger(__name__)

REQUIRED_OPTIONS = 4
MIN_PROMPT_LENGTH = 10
MIN_EXPLANATION_LENGTH = 10
MIN_SOURCE_REFERENCE_LENGTH = 15
MAX_SOURCE_REFERENCE_LENGTH = 300
PLACEHOLDER_OPTIONS = ["Option A", "Option B", "Option C", "Option D"]


def _error(field: str, message: str) -> ValidationIssue:
    return ValidationIssue(field=field, message=message, severity="error")


def _warning(field: str, message: str) -> ValidationIssue:
    return ValidationIssue(field=field, message=message, severity="warning")


def is_batch_duplicate(
    prompt: str,
    existing: List[Question],
    threshold: float = BATCH_DUPLICATE_THRESHOLD,
) -> bool:
    current = prompt.lower().strip()
    for other in existing:
        other_text = other.prompt.lower().strip()
        if other_text == current or jaccard_similarity(other_text, current) > threshold:
            return True
    return False


def validate_question(
    raw: Any,
    existing_questions: Optional[List[Question]] = None,
    source_text: Optional[str] = None,
) -> ValidationResult:
    """
    Check one generated question.

    Errors block acceptance; warnings are informational. When errors exist,
    a fixed variant is attached for the caller to re-validate.
    """
    question = normalize_question(raw)
    existing_questions = existing_questions or []
    errors: List[ValidationIssue] = []
    warnings: List[ValidationIssue] = []

    # 1. Prompt
    prompt = question.prompt or ""
    if len(prompt.strip()) < MIN_PROMPT_LENGTH:
        errors.append(_error(
            "prompt",
            f"Question text too short ({len(prompt.strip())} chars). "
            f"Minimum: {MIN_PROMPT_LENGTH} characters.",
        ))

    # 2. Option count
    options = question.options
    if len(options) != REQUIRED_OPTIONS:
        errors.append(_error("options", f"Expected {REQUIRED_OPTIONS} options, got {len(options)}."))

    # 3. Empty options
    empty = [o for o in options if not o or not o.strip()]
    if empty:
        errors.append(_error("options", f"{len(empty)} empty option(s) found."))

    # 4. Duplicate options
    if len({o.lower().strip() for o in options}) != len(options):
        errors.append(_error("options", "Duplicate options detected."))

    # 5. Correct index
    correct_index = question.resolved_correct_index()
    if correct_index is None:
        errors.append(_error(
            "correct_option_index",
            f"Invalid correct option index: {question.correct_option_index!r}. Must be 0-3.",
        ))

    # 6. Duplicate of an already accepted question
    if is_batch_duplicate(prompt, existing_questions):
        warnings.append(_warning(
            "prompt",
            "Question appears to be a duplicate or very similar to an existing question.",
        ))

    # 7. Explanation
    if not question.explanation or len(question.explanation) < MIN_EXPLANATION_LENGTH:
        warnings.append(_warning("explanation", "Missing or too short explanation."))

    # 8. Source reference
    reference = question.source_reference
    if not reference or len(reference) < MIN_SOURCE_REFERENCE_LENGTH:
        warnings.append(_warning(
            "source_reference",
            "Missing or too short source reference. Questions should cite the source text.",
        ))
    elif len(reference) > MAX_SOURCE_REFERENCE_LENGTH:
        warnings.append(_warning(
            "source_reference",
            "Source reference is too long. Keep it concise (15-100 words).",
        ))

    # 9. Cognitive level
    if question.cognitive_level and question.cognitive_level not in COGNITIVE_LEVELS:
        warnings.append(_warning(
            "cognitive_level",
            f"Invalid cognitive level: {question.cognitive_level}. "
            "Must be remember, understand, or apply.",
        ))

    # 10. Near-identical options
    for i in range(len(options)):
        for j in range(i + 1, len(options)):
            similarity = jaccard_similarity(options[i] or "", options[j] or "")
            if similarity > OPTION_SIMILARITY_THRESHOLD:
                warnings.append(_warning(
                    "options",
                    f"Options {i + 1} and {j + 1} are very similar ({round(similarity * 100)}%).",
                ))

    # 11. Ambiguity
    ambiguity = detect_ambiguity(prompt, options, correct_index, source_text)
    if ambiguity:
        warnings.append(_warning(
            "prompt",
            f"Potentially ambiguous question: {'; '.join(ambiguity)}",
        ))

    fixed_question = None
    if errors:
        fixed_question = fix_question(question)

    return ValidationResult(errors=errors, warnings=warnings, fixed_question=fixed_question)


def fix_question(question: Question) -> Question:
    """
    Pad or truncate options to four and default an unresolved index to 0.

    Blank and repeated options are left as they are, so a question whose
    options collide stays invalid and is rejected.
    """
    options = list(question.options)
    if len(options) < REQUIRED_OPTIONS:
        options = (options + PLACEHOLDER_OPTIONS[len(options):])[:REQUIRED_OPTIONS]
    elif len(options) > REQUIRED_OPTIONS:
        options = options[:REQUIRED_OPTIONS]

    correct_index = question.resolved_correct_index()
    if correct_index is None or correct_index >= len(options):
        correct_index = 0

    return replace(question, options=options, correct_option_index=correct_index, correct_answer=None)


def validate_batch(
    questions: List[Any],
    source_text: Optional[str] = None,
) -> BatchValidationResult:
    """
    Validate questions in order against the ones already accepted.

    Valid items with a duplicate warning are dropped; invalid items are
    accepted only if their fixed variant passes.
    """
    valid: List[Question] = []
    rejected: List[Dict[str, Any]] = []
    fixed = 0
    duplicates_removed = 0

    for raw in questions:
        result = validate_question(raw, valid, source_text)

        if result.is_valid:
            if result.has_duplicate_warning():
                duplicates_removed += 1
                continue
            valid.append(_with_resolved_index(normalize_question(raw)))
            continue

        if result.fixed_question is not None:
            fixed_result = validate_question(result.fixed_question, valid, source_text)
            if fixed_result.is_valid and not fixed_result.has_duplicate_warning():
                valid.append(result.fixed_question)
                fixed += 1
                continue
            if fixed_result.is_valid:
                duplicates_removed += 1
                continue

        rejected.append({"question": normalize_question(raw), "result": result})

    stats = BatchValidationStats(
        total=len(questions),
        valid=len(valid),
        fixed=fixed,
        rejected=len(rejected),
        duplicates_removed=duplicates_removed,
    )
    logger.info(
        f"Validated {stats.total} questions: {stats.valid} valid "
        f"({stats.fixed} fixed), {stats.rejected} rejected, "
        f"{stats.duplicates_removed} duplicates removed"
    )
    return BatchValidationResult(valid_questions=valid, rejected_questions=rejected, stats=stats)


def deduplicate_questions(
    questions: List[Any],
    threshold: float = BATCH_DUPLICATE_THRESHOLD,
) -> List[Question]:
    """Keep the first of each group of near-identical prompts."""
    unique: List[Question] = []
    for raw in questions:
        question = normalize_question(raw)
        text = question.prompt.lower().strip()
        if not any(jaccard_similarity(text, u.prompt.lower().strip()) > threshold for u in unique):
            unique.append(question)
    return unique


def check_concept_coverage(questions: List[Any], concept_ids: List[str]) -> Dict[str, Any]:
    """How many of the given concepts at least one question targets."""
    counts: Dict[str, int] = {cid: 0 for cid in concept_ids}
    for raw in questions:
        question = normalize_question(raw)
        for cid in question.concept_ids:
            if cid in counts:
                counts[cid] += 1

    covered = [cid for cid, n in counts.items() if n > 0]
    uncovered = [cid for cid, n in counts.items() if n == 0]
    return {
        "coverage": len(covered) / len(concept_ids) if concept_ids else 1.0,
        "covered_concepts": covered,
        "uncovered_concepts": uncovered,
        "concept_question_count": counts,
    }


def _with_resolved_index(question: Question) -> Question:
    """Accepted questions always carry an integer correct index."""
    index = question.resolved_correct_index()
    if index == question.correct_option_index:
        return question
    return replace(question, correct_option_index=index, correct_answer=None)
