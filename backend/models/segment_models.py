"""
Data models for chapter segmentation.
"""
from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class ChapterSpec:
    """Abstract chapter metadata produced by course structuring."""
    index: int
    title: str
    short_summary: str = ""
    key_concepts: List[str] = field(default_factory=list)


@dataclass
class ChapterBoundary:
    """Resolved span of one chapter in the source text."""
    index: int
    title: str
    start_position: int
    end_position: int
    text: str
    strategy: Optional[str] = None  # how the start position was found


@dataclass
class SectionMarker:
    """Heading-like line found in raw text."""
    position: int
    text: str
    kind: str  # numbered | chapter | roman | caps
