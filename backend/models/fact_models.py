"""
Data models for extracted source facts and semantic validation.
"""
from dataclasses import dataclass, field
from typing import List, Dict, Optional, Any

FACT_CATEGORIES = ("definition", "formula", "process", "relationship", "statistic", "example")


@dataclass
class Fact:
    """Atomic, verifiable claim drawn from source text."""
    id: str
    statement: str
    source_quote: str
    category: str = "definition"
    confidence: float = 0.5  # 0.0-1.0
    keywords: List[str] = field(default_factory=list)


@dataclass
class SemanticValidationResult:
    """Grounding check for one question."""
    is_valid: bool
    confidence: float  # 0.0-1.0
    matched_fact_ids: List[str] = field(default_factory=list)
    issues: List[str] = field(default_factory=list)
    suggested_fix: Optional[str] = None


@dataclass
class SemanticBatchStats:
    total: int = 0
    valid: int = 0
    invalid: int = 0
    avg_confidence: float = 0.0


@dataclass
class SemanticBatchResult:
    valid_questions: List[Any] = field(default_factory=list)
    invalid_questions: List[Dict[str, Any]] = field(default_factory=list)
    results: List[SemanticValidationResult] = field(default_factory=list)
    stats: SemanticBatchStats = field(default_factory=SemanticBatchStats)
