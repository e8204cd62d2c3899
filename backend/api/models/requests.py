"""
Pydantic request models for API endpoints.
"""
from pydantic import BaseModel, Field
from typing import List, Optional, Dict, Any


class ChapterInput(BaseModel):
    """Chapter metadata used to locate a chapter in course text."""
    index: int = Field(..., description="Chapter position (1-based in most callers)")
    title: str = Field(..., description="Chapter title")
    short_summary: Optional[str] = Field(default="", description="One-line summary")
    key_concepts: List[str] = Field(default_factory=list, description="Key concepts covered")


class SegmentRequest(BaseModel):
    """Request model for chapter segmentation."""
    text: str = Field(..., min_length=1, description="Full course text")
    chapters: List[ChapterInput] = Field(default_factory=list, description="Chapters to locate; derived from the text when empty")
    language: str = Field(default="en", description="Course language (en, fr, de)")
    min_chunk_size: Optional[int] = Field(default=None, ge=1, description="Minimum chapter span")
    max_chunk_size: Optional[int] = Field(default=None, ge=1, description="Maximum chapter span")


class ValidateQuestionsRequest(BaseModel):
    """Request model for structural validation of a question batch."""
    questions: List[Dict[str, Any]] = Field(..., description="Raw question records")
    source_text: Optional[str] = Field(default=None, description="Chapter text for ambiguity checks")


class GenerateQuestionsRequest(BaseModel):
    """Request model for generating questions for one chapter."""
    chapter_title: str = Field(..., description="Chapter title")
    chapter_text: str = Field(..., min_length=1, description="Chapter source text")
    chapter_index: int = Field(default=1, description="Chapter index")
    language: str = Field(default="en", description="Question language (en, fr, de)")
    count: int = Field(default=10, ge=1, le=30, description="Number of questions to request")


class AuditChapterInput(BaseModel):
    """A finished chapter with its questions."""
    index: Optional[int] = None
    title: str
    short_summary: Optional[str] = ""
    questions: List[Dict[str, Any]] = Field(default_factory=list)


class AuditRequest(BaseModel):
    """Request model for a course quality audit."""
    id: Optional[str] = Field(default=None, description="Course ID")
    title: Optional[str] = Field(default=None, description="Course title")
    source_text: Optional[str] = Field(default="", description="Course source text")
    chapters: List[AuditChapterInput] = Field(default_factory=list)
