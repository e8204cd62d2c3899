"""
Cross-chapter near-duplicate tracking for one course-generation session.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from core.config import COURSE_DUPLICATE_THRESHOLD
from models.question_models import Question, normalize_question
from services.processing.utils import jaccard_similarity

logger = logging.getLogger(__name__)


@dataclass
class DeduplicationRecord:
    chapter_index: int
    normalized_text: str


@dataclass
class DuplicateCheck:
    is_duplicate: bool
    duplicate_of_chapter: Optional[int] = None
    similarity: Optional[float] = None


class CourseDeduplicationTracker:
    """
    Remembers every accepted question text of a session.

    Create one tracker per course-generation run; tracked texts are never
    forgotten until clear().
    """

    def __init__(self, threshold: float = COURSE_DUPLICATE_THRESHOLD):
        self.threshold = threshold
        self.records: Dict[str, DeduplicationRecord] = {}

    def is_duplicate(self, question_text: str) -> DuplicateCheck:
        normalized = (question_text or "").lower().strip()
        for record in self.records.values():
            if record.normalized_text == normalized:
                return DuplicateCheck(True, record.chapter_index, 1.0)
            similarity = jaccard_similarity(normalized, record.normalized_text)
            if similarity > self.threshold:
                return DuplicateCheck(True, record.chapter_index, similarity)
        return DuplicateCheck(False)

    def add_question(self, question_id: str, question_text: str, chapter_index: int):
        self.records[question_id] = DeduplicationRecord(
            chapter_index=chapter_index,
            normalized_text=(question_text or "").lower().strip(),
        )

    def filter_questions(self, questions: List[Any], chapter_index: int) -> Dict[str, Any]:
        """
        Keep questions not seen before and start tracking them.

        Returns:
            {
                "filtered": List[Question],
                "duplicates_removed": int,
                "duplicate_details": List[{question, duplicate_of_chapter, similarity}]
            }
        """
        filtered: List[Question] = []
        details: List[Dict[str, Any]] = []

        for raw in questions:
            question = normalize_question(raw)
            text = question.prompt
            check = self.is_duplicate(text)

            if check.is_duplicate:
                details.append({
                    "question": text[:80] + "...",
                    "duplicate_of_chapter": check.duplicate_of_chapter,
                    "similarity": check.similarity,
                })
                continue

            # Unique id even when the same chapter is filtered more than once
            question_id = f"ch{chapter_index}_q{len(self.records)}"
            self.add_question(question_id, text, chapter_index)
            filtered.append(question)

        if details:
            logger.info(
                f"Chapter {chapter_index}: removed {len(details)} cross-chapter duplicate(s)"
            )

        return {
            "filtered": filtered,
            "duplicates_removed": len(questions) - len(filtered),
            "duplicate_details": details,
        }

    def get_stats(self) -> Dict[str, Any]:
        by_chapter: Dict[int, int] = {}
        for record in self.records.values():
            by_chapter[record.chapter_index] = by_chapter.get(record.chapter_index, 0) + 1
        return {"total_questions": len(self.records), "questions_by_chapter": by_chapter}

    def clear(self):
        self.records.clear()
