"""
Post-hoc quality audit of generated chapters and questions against the
course source text. Scores and recommends only; never blocks anything.
"""
import logging
from typing import Any, Dict, List, Optional

from models.audit_models import (
    NOT_AUDITABLE,
    AuditSummary,
    ChapterAudit,
    CourseAudit,
    OptionAnalysis,
    QuestionAudit,
    SourceMatch,
)
from models.question_models import normalize_question
from services.processing.utils import SourceLookup, find_in_source, keyword_similarity
from services.validation.ambiguity import detect_ambiguity

logger = logging.getLogger(__name__)

MIN_SOURCE_LENGTH = 100
MIN_REFERENCE_LENGTH = 15

PROMPT_WEIGHT = 0.30
ANSWER_WEIGHT = 0.35
DISTRACTOR_BASE = 25
DISTRACTOR_PENALTY = 8
AMBIGUITY_BONUS = 10
AMBIGUITY_PENALTY = 3
REFERENCE_BONUS = 5
COGNITIVE_BONUS = {"apply": 3, "understand": 1}

TITLE_WEIGHT = 0.25
QUESTIONS_WEIGHT = 0.6
IDEAL_QUESTION_RANGE = (5, 15)


def _as_match(lookup: SourceLookup) -> SourceMatch:
    return SourceMatch(found=lookup.found, confidence=lookup.confidence, matched_text=lookup.matched_text)


def _chapter_index(chapter: Dict[str, Any], default: int) -> int:
    index = chapter.get("index")
    return default if index is None else index


def get_quality_rating(score: float) -> Dict[str, str]:
    if score >= 80:
        return {"rating": "excellent", "color": "green", "label": "Excellent"}
    if score >= 60:
        return {"rating": "good", "color": "blue", "label": "Good"}
    if score >= 40:
        return {"rating": "fair", "color": "yellow", "label": "Fair"}
    return {"rating": "poor", "color": "red", "label": "Poor"}


def audit_question(raw: Any, source_text: str) -> QuestionAudit:
    """
    Score one question from 0 to 100 against the source.

    Weights: prompt/source keyword similarity 30%, correct answer (or its
    source reference) found in source 35%, clean distractors up to 25
    points, no ambiguity up to 10 points; plus bonuses for a verified
    source reference and higher cognitive levels.
    """
    question = normalize_question(raw)
    if not source_text or not source_text.strip():
        return _unauditable_question(question)

    correct_index = question.resolved_correct_index()
    correct_answer = question.correct_option_text()

    answer_match = find_in_source(correct_answer, source_text, 0.5)

    reference = question.source_reference or ""
    reference_match: Optional[SourceLookup] = None
    if len(reference) >= MIN_REFERENCE_LENGTH:
        reference_match = find_in_source(reference, source_text, 0.4)

    prompt_similarity = keyword_similarity(question.prompt, source_text)

    options = []
    for i, option in enumerate(question.options):
        lookup = find_in_source(option, source_text, 0.5)
        options.append(OptionAnalysis(
            index=i,
            text=option,
            is_correct=i == correct_index,
            found_in_source=lookup.found,
            confidence=lookup.confidence,
        ))

    warnings = detect_ambiguity(question.prompt, question.options, correct_index, source_text)

    score = min(prompt_similarity, 100) * PROMPT_WEIGHT

    if reference_match is not None and reference_match.found and reference_match.confidence >= 50:
        best = max(reference_match.confidence, answer_match.confidence)
        score += min(best + 10, 100) * ANSWER_WEIGHT
    elif answer_match.found:
        score += answer_match.confidence * ANSWER_WEIGHT

    problematic = sum(1 for o in options if not o.is_correct and o.found_in_source and o.confidence >= 60)
    score += max(0, DISTRACTOR_BASE - problematic * DISTRACTOR_PENALTY)

    score += max(0, AMBIGUITY_BONUS - len(warnings) * AMBIGUITY_PENALTY)

    if reference_match is not None and reference_match.found:
        score = min(100, score + REFERENCE_BONUS)
    score = min(100, score + COGNITIVE_BONUS.get(question.cognitive_level or "", 0))

    issues = []
    if not answer_match.found:
        issues.append("Correct answer not found in source text")
    if problematic:
        issues.append(f"{problematic} distractors also appear in source text")

    return QuestionAudit(
        question_id=question.id,
        prompt=question.prompt,
        relevance_score=round(score),
        prompt_similarity=prompt_similarity,
        answer_match=_as_match(answer_match),
        source_reference_match=_as_match(reference_match) if reference_match is not None else None,
        option_analysis=options,
        ambiguity_warnings=warnings,
        issues=issues,
    )


def audit_chapter(chapter: Dict[str, Any], source_text: str, chapter_index: int = 0) -> ChapterAudit:
    """Aggregate question scores (60%) with title presence (25%) and question count (15%)."""
    if not source_text or not source_text.strip():
        return _unauditable_chapter(chapter, chapter_index)

    title = chapter.get("title", "")
    questions = chapter.get("questions") or []

    title_match = find_in_source(title, source_text, 0.6)
    audits = [audit_question(q, source_text) for q in questions]
    avg = sum(a.relevance_score for a in audits) / len(audits) if audits else 0.0

    score = 0.0
    if title_match.found:
        score += title_match.confidence * TITLE_WEIGHT
    score += avg * QUESTIONS_WEIGHT

    low, high = IDEAL_QUESTION_RANGE
    if low <= len(questions) <= high:
        score += 15
    elif questions:
        score += 8

    issues = []
    if not title_match.found:
        issues.append("Chapter title not found in source text")
    if len(questions) < low:
        issues.append(f"Only {len(questions)} questions - consider adding more")
    poor = sum(1 for a in audits if a.relevance_score < 40)
    if poor:
        issues.append(f"{poor} questions with low relevance score")
    ambiguous = sum(1 for a in audits if a.ambiguity_warnings)
    if ambiguous:
        issues.append(f"{ambiguous} questions with ambiguity warnings")

    return ChapterAudit(
        chapter_index=_chapter_index(chapter, chapter_index),
        title=title,
        relevance_score=round(score),
        title_found_in_source=title_match.found,
        question_count=len(questions),
        avg_question_score=round(avg),
        questions=audits,
        issues=issues,
    )


def _unauditable_question(question) -> QuestionAudit:
    correct_index = question.resolved_correct_index()
    return QuestionAudit(
        question_id=question.id,
        prompt=question.prompt,
        relevance_score=NOT_AUDITABLE,
        prompt_similarity=0.0,
        answer_match=SourceMatch(found=False, confidence=0),
        option_analysis=[
            OptionAnalysis(
                index=j,
                text=option,
                is_correct=j == correct_index,
                found_in_source=False,
                confidence=0,
            )
            for j, option in enumerate(question.options)
        ],
        issues=["No source text available - cannot audit relevance"],
    )


def _unauditable_chapter(chapter: Dict[str, Any], chapter_index: int) -> ChapterAudit:
    questions = chapter.get("questions") or []
    return ChapterAudit(
        chapter_index=_chapter_index(chapter, chapter_index),
        title=chapter.get("title", ""),
        relevance_score=NOT_AUDITABLE,
        title_found_in_source=False,
        question_count=len(questions),
        avg_question_score=NOT_AUDITABLE,
        questions=[_unauditable_question(normalize_question(raw)) for raw in questions],
        issues=["No source text available - cannot audit relevance"],
    )


def _not_auditable(course: Dict[str, Any]) -> CourseAudit:
    chapters = course.get("chapters") or []
    chapter_audits = [_unauditable_chapter(chapter, i) for i, chapter in enumerate(chapters)]

    return CourseAudit(
        course_id=course.get("id"),
        overall_score=NOT_AUDITABLE,
        total_questions=sum(c.question_count for c in chapter_audits),
        avg_question_score=NOT_AUDITABLE,
        chapters=chapter_audits,
        recommendations=["No source text available - upload source material to enable quality audit"],
        auditable=False,
    )


def audit_course(course: Dict[str, Any]) -> CourseAudit:
    """
    Audit every chapter of a course against its source_text.

    A course with less than 100 characters of source is reported as not
    auditable (-1 scores), never as a zero.
    """
    source_text = course.get("source_text") or ""
    if len(source_text) < MIN_SOURCE_LENGTH:
        logger.info(f"Course {course.get('id')} has no usable source text, skipping audit")
        return _not_auditable(course)

    chapters = course.get("chapters") or []
    chapter_audits = [audit_chapter(ch, source_text, i) for i, ch in enumerate(chapters)]
    audits = [a for ch in chapter_audits for a in ch.questions]
    total = len(audits)

    summary = AuditSummary(
        excellent=sum(1 for a in audits if a.relevance_score >= 80),
        good=sum(1 for a in audits if 60 <= a.relevance_score < 80),
        fair=sum(1 for a in audits if 40 <= a.relevance_score < 60),
        poor=sum(1 for a in audits if a.relevance_score < 40),
        ambiguous=sum(1 for a in audits if a.ambiguity_warnings),
        with_source_match=sum(1 for a in audits if a.answer_match.found),
    )

    recommendations = []
    if summary.poor > total * 0.2:
        recommendations.append(f"{summary.poor} questions have low relevance - review and regenerate")
    if summary.ambiguous > total * 0.1:
        recommendations.append(f"{summary.ambiguous} questions may be ambiguous - review wording")
    if summary.with_source_match < total * 0.6:
        recommendations.append("Many correct answers not found in source - verify question accuracy")
    with_issues = sum(1 for ch in chapter_audits if ch.issues)
    if with_issues:
        recommendations.append(f"{with_issues} chapters have issues to address")
    if len(chapters) < 3:
        recommendations.append("Consider adding more chapters for better content coverage")

    overall = (
        sum(ch.relevance_score for ch in chapter_audits) / len(chapter_audits)
        if chapter_audits else 0
    )
    avg_question = sum(a.relevance_score for a in audits) / total if total else 0.0

    logger.info(
        f"Audited course {course.get('id')}: score {round(overall)}, "
        f"{total} questions, {summary.poor} poor"
    )
    return CourseAudit(
        course_id=course.get("id"),
        overall_score=round(overall),
        total_questions=total,
        avg_question_score=avg_question,
        chapters=chapter_audits,
        summary=summary,
        recommendations=recommendations,
    )
