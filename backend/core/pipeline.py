"""
Pipeline orchestration for question generation.

One pipeline instance covers one course-generation session: its
deduplication tracker remembers every accepted question across chapters.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional, Sequence

from core.config import (
    MODEL_QUESTION_GENERATION,
    TEMPERATURE_QUESTION_GENERATION,
    MAX_TOKENS_QUESTION_GENERATION,
    TRUNCATE_CHAPTER_TEXT,
    TRUNCATE_COURSE_TEXT,
    ENABLE_SEMANTIC_VALIDATION,
    MAX_CONCURRENT_CHAPTERS,
    MAX_CONCURRENT_IMAGES,
)
from core.errors import ResponseParseError
from core.registry import GENERATION_CACHE, ReliabilityRegistry
from models.question_models import Question
from models.segment_models import ChapterBoundary
from services.extraction.fact_extractor import FactExtractor, LANGUAGE_INSTRUCTIONS
from services.extraction.semantic_validator import SemanticValidator
from services.processing.contextual_fallback import (
    generate_contextual_chapters,
    generate_contextual_questions,
)
from services.processing.language import detect_language
from services.processing.text_segmenter import extract_chapter_text
from services.processing.utils import parse_json_response, truncate_text
from services.reliability.retry import CRITICAL_RETRY_OPTIONS
from services.reliability.waves import run_in_waves
from services.validation.admin_filter import filter_administrative_questions
from services.validation.deduplication import CourseDeduplicationTracker
from services.validation.question_validator import validate_batch

logger = logging.getLogger(__name__)

DEFAULT_QUESTION_COUNT = 10


def parse_generated_questions(response: str) -> List[Any]:
    """
    Question records from a generation response: either {"questions": [...]}
    or a bare array.

    Raises:
        ResponseParseError: when neither shape can be found.
    """
    parsed = parse_json_response(response)
    if isinstance(parsed, dict) and isinstance(parsed.get("questions"), list):
        return parsed["questions"]

    array = parse_json_response(response, expect="array")
    if isinstance(array, list):
        return array

    raise ResponseParseError(f"No question list in response: {response[:100]!r}")


@dataclass
class ChapterQuestions:
    """Accepted questions for one chapter and what happened on the way."""
    chapter_index: int
    title: str
    questions: List[Question] = field(default_factory=list)
    used_fallback: bool = False
    stats: Dict[str, Any] = field(default_factory=dict)


class QuestionGenerationPipeline:
    """Generates, validates and filters questions chapter by chapter."""

    def __init__(
        self,
        registry: ReliabilityRegistry,
        tracker: Optional[CourseDeduplicationTracker] = None,
        enable_semantic_validation: bool = ENABLE_SEMANTIC_VALIDATION,
    ):
        self.registry = registry
        self.tracker = tracker or CourseDeduplicationTracker()
        self.enable_semantic_validation = enable_semantic_validation
        self.fact_extractor = FactExtractor(registry)
        self.semantic_validator = SemanticValidator(registry)

    async def generate_chapter_questions(
        self,
        chapter_title: str,
        chapter_text: str,
        chapter_index: int,
        language: str = "en",
        count: int = DEFAULT_QUESTION_COUNT,
    ) -> ChapterQuestions:
        """
        Run one chapter through the full pipeline.

        Stages:
            1. Guarded, cached generation
            2. Structural validation and auto-fix
            3. Cross-chapter deduplication
            4. Administrative filter
            5. Semantic grounding (when enabled and facts exist)
            6. Contextual fallback if nothing survived
        """
        result = ChapterQuestions(chapter_index=chapter_index, title=chapter_title)
        text = truncate_text(chapter_text or "", TRUNCATE_CHAPTER_TEXT)

        # STAGE 1: Generation
        raw_questions = await self._generate(chapter_title, text, language, count)
        result.stats["generated"] = len(raw_questions)

        # STAGE 2: Structural validation
        batch = validate_batch(raw_questions, source_text=text)
        result.stats["validation"] = {
            "total": batch.stats.total,
            "valid": batch.stats.valid,
            "fixed": batch.stats.fixed,
            "rejected": batch.stats.rejected,
            "duplicates_removed": batch.stats.duplicates_removed,
        }

        # STAGE 3: Cross-chapter deduplication
        deduplicated = self.tracker.filter_questions(batch.valid_questions, chapter_index)
        result.stats["cross_chapter_duplicates"] = deduplicated["duplicates_removed"]

        # STAGE 4: Administrative filter
        admin = filter_administrative_questions(deduplicated["filtered"])
        result.stats["administrative_removed"] = admin["stats"]["removed"]
        questions = admin["filtered"]

        # STAGE 5: Semantic validation
        if self.enable_semantic_validation and questions:
            facts = await self.fact_extractor.extract_facts(text, chapter_title, language)
            result.stats["facts"] = len(facts)
            if facts:
                semantic = await self.semantic_validator.validate_batch(questions, facts, text)
                result.stats["semantic"] = {
                    "valid": semantic.stats.valid,
                    "invalid": semantic.stats.invalid,
                    "avg_confidence": semantic.stats.avg_confidence,
                }
                questions = semantic.valid_questions

        # STAGE 6: Contextual fallback
        if not questions:
            logger.warning(
                f"No questions survived for chapter {chapter_index} '{chapter_title}', using contextual fallback"
            )
            questions = generate_contextual_questions(chapter_title, text, language, count=count)
            result.used_fallback = True

        result.questions = questions
        logger.info(
            f"Chapter {chapter_index} '{chapter_title}': {len(questions)} questions accepted "
            f"from {len(raw_questions)} generated"
        )
        return result

    async def _generate(self, chapter_title: str, text: str, language: str, count: int) -> List[Any]:
        prompt = self.registry.prompts.render(
            "question_generation",
            chapter_title=chapter_title,
            language_instruction=LANGUAGE_INSTRUCTIONS.get(language, LANGUAGE_INSTRUCTIONS["en"]),
            chapter_text=text,
            count=count,
        )

        try:
            response = await self.registry.generate(
                "generate_questions",
                prompt,
                model=MODEL_QUESTION_GENERATION,
                temperature=TEMPERATURE_QUESTION_GENERATION,
                max_tokens=MAX_TOKENS_QUESTION_GENERATION,
                retry_options=CRITICAL_RETRY_OPTIONS,
                cache_name=GENERATION_CACHE,
                fallback=lambda: None,
            )
        except Exception as e:
            logger.error(f"Question generation failed for '{chapter_title}': {e}")
            return []

        if response is None:
            return []

        try:
            return parse_generated_questions(response)
        except ResponseParseError as e:
            logger.warning(f"Could not parse generated questions for '{chapter_title}': {e}")
            return []

    def segment(self, full_text: str, chapters: Optional[Sequence] = None, language: str = "en") -> List[ChapterBoundary]:
        """Chapter spans for the course text; chapters are derived from the text when none are given."""
        if not chapters:
            chapters = generate_contextual_chapters(full_text, language)
        return extract_chapter_text(full_text, chapters)

    async def generate_course_questions(
        self,
        full_text: str,
        chapters: Optional[Sequence] = None,
        language: Optional[str] = None,
        count: int = DEFAULT_QUESTION_COUNT,
        wave_size: int = MAX_CONCURRENT_CHAPTERS,
    ) -> List[ChapterQuestions]:
        """Segment the course, then process chapters in bounded waves."""
        text = truncate_text(full_text, TRUNCATE_COURSE_TEXT)

        if language is None:
            guess = await detect_language(self.registry, text)
            language = guess.language
            logger.info(f"Detected course language '{language}' ({guess.method}, {guess.confidence:.2f})")

        boundaries = self.segment(text, chapters, language)
        return await run_in_waves(
            boundaries,
            lambda b: self.generate_chapter_questions(b.title, b.text, b.index, language, count),
            wave_size,
        )

    async def extract_images_text(self, images: List[bytes], wave_size: int = MAX_CONCURRENT_IMAGES) -> List[str]:
        """OCR images in bounded waves; an image that cannot be read yields an empty string."""
        async def read(image: bytes) -> str:
            try:
                return await self.registry.extract_image_text(image, fallback=lambda: "")
            except Exception as e:
                logger.error(f"Image text extraction failed: {e}")
                return ""

        return await run_in_waves(images, read, wave_size)
