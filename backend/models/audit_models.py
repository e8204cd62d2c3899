"""
Data models for post-hoc quality audits.

A score of -1 means "not auditable" (no source text), which is distinct
from a genuine low score.
"""
from dataclasses import dataclass, field
from typing import List, Dict, Optional, Any

NOT_AUDITABLE = -1


@dataclass
class SourceMatch:
    found: bool
    confidence: float  # 0-100
    matched_text: Optional[str] = None


@dataclass
class OptionAnalysis:
    index: int
    text: str
    is_correct: bool
    found_in_source: bool
    confidence: float


@dataclass
class QuestionAudit:
    question_id: Optional[str]
    prompt: str
    relevance_score: int
    prompt_similarity: float
    answer_match: SourceMatch
    source_reference_match: Optional[SourceMatch] = None
    option_analysis: List[OptionAnalysis] = field(default_factory=list)
    ambiguity_warnings: List[str] = field(default_factory=list)
    issues: List[str] = field(default_factory=list)


@dataclass
class ChapterAudit:
    chapter_index: int
    title: str
    relevance_score: int
    title_found_in_source: bool
    question_count: int
    avg_question_score: float
    questions: List[QuestionAudit] = field(default_factory=list)
    issues: List[str] = field(default_factory=list)


@dataclass
class AuditSummary:
    excellent: int = 0  # >= 80
    good: int = 0  # 60-79
    fair: int = 0  # 40-59
    poor: int = 0  # < 40
    ambiguous: int = 0
    with_source_match: int = 0


@dataclass
class CourseAudit:
    course_id: Optional[str]
    overall_score: int
    total_questions: int
    avg_question_score: float
    chapters: List[ChapterAudit] = field(default_factory=list)
    summary: AuditSummary = field(default_factory=AuditSummary)
    recommendations: List[str] = field(default_factory=list)
    auditable: bool = True
