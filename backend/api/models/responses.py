"""
Pydantic response models for API endpoints.
"""
from pydantic import BaseModel, Field
from typing import List, Optional, Dict, Any


class QuestionModel(BaseModel):
    """An accepted multiple-choice question."""
    prompt: str
    options: List[str]
    correct_option_index: Optional[int] = None
    explanation: Optional[str] = None
    source_reference: Optional[str] = None
    cognitive_level: Optional[str] = None
    concept_tested: Optional[str] = None
    concept_ids: List[str] = []
    id: Optional[str] = None


class ChapterBoundaryModel(BaseModel):
    """Resolved span of one chapter."""
    index: int
    title: str
    start_position: int
    end_position: int
    text: str
    strategy: Optional[str] = None


class SegmentResponse(BaseModel):
    """Response model for segmentation."""
    chapters: List[ChapterBoundaryModel]


class RejectedQuestion(BaseModel):
    """A question that failed validation, with its errors."""
    question: QuestionModel
    errors: List[str]
    warnings: List[str] = []


class ValidateQuestionsResponse(BaseModel):
    """Response model for batch validation."""
    valid_questions: List[QuestionModel]
    rejected_questions: List[RejectedQuestion]
    administrative_removed: List[Dict[str, Any]] = []
    stats: Dict[str, int]


class GenerateQuestionsResponse(BaseModel):
    """Response model for chapter question generation."""
    chapter_index: int
    title: str
    questions: List[QuestionModel]
    used_fallback: bool = Field(default=False, description="True when templated fallback questions were returned")
    stats: Dict[str, Any] = {}


class ReliabilityResponse(BaseModel):
    """Breaker, cache and generation-call statistics."""
    breakers: Dict[str, Dict[str, Any]]
    caches: Dict[str, Dict[str, Any]]
    llm_calls: Dict[str, Any]
