"""
Content routes: segmentation, validation and question generation.
"""
from dataclasses import asdict
from fastapi import APIRouter, Depends, HTTPException

from api.dependencies import get_registry
from api.models.requests import GenerateQuestionsRequest, SegmentRequest, ValidateQuestionsRequest
from api.models.responses import GenerateQuestionsResponse, SegmentResponse, ValidateQuestionsResponse
from core.config import MIN_CHUNK_SIZE, MAX_CHUNK_SIZE
from core.pipeline import QuestionGenerationPipeline
from core.registry import ReliabilityRegistry
from services.processing.contextual_fallback import generate_contextual_chapters
from services.processing.text_segmenter import extract_chapter_text
from services.validation.admin_filter import filter_administrative_questions
from services.validation.question_validator import validate_batch

router = APIRouter()


@router.post("/segment", response_model=SegmentResponse)
async def segment(request: SegmentRequest):
    """Locate chapter spans in course text."""
    chapters = [c.model_dump() for c in request.chapters]
    if not chapters:
        chapters = generate_contextual_chapters(request.text, request.language)

    try:
        boundaries = extract_chapter_text(
            request.text,
            chapters,
            min_chunk_size=request.min_chunk_size or MIN_CHUNK_SIZE,
            max_chunk_size=request.max_chunk_size or MAX_CHUNK_SIZE,
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    return SegmentResponse(chapters=[asdict(b) for b in boundaries])


@router.post("/questions/validate", response_model=ValidateQuestionsResponse)
async def validate_questions(request: ValidateQuestionsRequest):
    """
    Structural validation plus administrative filtering of a batch.
    Problems are reported in the body, never as HTTP errors.
    """
    batch = validate_batch(request.questions, source_text=request.source_text)
    admin = filter_administrative_questions(batch.valid_questions)

    return ValidateQuestionsResponse(
        valid_questions=[q.to_dict() for q in admin["filtered"]],
        rejected_questions=[
            {
                "question": item["question"].to_dict(),
                "errors": [e.message for e in item["result"].errors],
                "warnings": [w.message for w in item["result"].warnings],
            }
            for item in batch.rejected_questions
        ],
        administrative_removed=admin["removed"],
        stats={
            "total": batch.stats.total,
            "valid": len(admin["filtered"]),
            "fixed": batch.stats.fixed,
            "rejected": batch.stats.rejected,
            "duplicates_removed": batch.stats.duplicates_removed,
            "administrative_removed": admin["stats"]["removed"],
        },
    )


@router.post("/questions/generate", response_model=GenerateQuestionsResponse)
async def generate_questions(
    request: GenerateQuestionsRequest,
    registry: ReliabilityRegistry = Depends(get_registry),
):
    """Run one chapter through generation, validation and filtering."""
    pipeline = QuestionGenerationPipeline(registry)
    result = await pipeline.generate_chapter_questions(
        chapter_title=request.chapter_title,
        chapter_text=request.chapter_text,
        chapter_index=request.chapter_index,
        language=request.language,
        count=request.count,
    )
    return GenerateQuestionsResponse(
        chapter_index=result.chapter_index,
        title=result.title,
        questions=[q.to_dict() for q in result.questions],
        used_fallback=result.used_fallback,
        stats=result.stats,
    )
