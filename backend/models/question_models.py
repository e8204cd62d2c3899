"""
Data models for generated quiz questions and their validation results.
"""
from dataclasses import dataclass, field, asdict
from typing import List, Dict, Optional, Any

COGNITIVE_LEVELS = ("remember", "understand", "apply")
ANSWER_LETTERS = "ABCD"


@dataclass
class Question:
    """Canonical form of one generated multiple-choice item."""
    prompt: str = ""
    options: List[str] = field(default_factory=list)
    correct_option_index: Optional[int] = None
    correct_answer: Optional[str] = None  # "A".."D", alternative to the index
    explanation: Optional[str] = None
    source_reference: Optional[str] = None
    cognitive_level: Optional[str] = None
    concept_tested: Optional[str] = None
    concept_ids: List[str] = field(default_factory=list)
    id: Optional[str] = None

    def resolved_correct_index(self) -> Optional[int]:
        """Correct index from the integer field or the answer letter, if resolvable."""
        if isinstance(self.correct_option_index, int) and not isinstance(self.correct_option_index, bool):
            if 0 <= self.correct_option_index <= 3:
                return self.correct_option_index
            return None
        if isinstance(self.correct_answer, str):
            letter = self.correct_answer.strip().upper()
            if len(letter) == 1 and letter in ANSWER_LETTERS:
                return ANSWER_LETTERS.index(letter)
        return None

    def correct_option_text(self) -> str:
        index = self.resolved_correct_index()
        if index is None or index >= len(self.options):
            return ""
        return self.options[index]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ValidationIssue:
    """A single problem found on a question."""
    field: str
    message: str
    severity: str  # "error" | "warning"


@dataclass
class ValidationResult:
    """Outcome of structural validation. is_valid iff there are no errors."""
    errors: List[ValidationIssue] = field(default_factory=list)
    warnings: List[ValidationIssue] = field(default_factory=list)
    fixed_question: Optional[Question] = None

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def has_duplicate_warning(self) -> bool:
        return any("duplicate" in w.message.lower() for w in self.warnings)


@dataclass
class BatchValidationStats:
    total: int = 0
    valid: int = 0
    fixed: int = 0
    rejected: int = 0
    duplicates_removed: int = 0


@dataclass
class BatchValidationResult:
    valid_questions: List[Question] = field(default_factory=list)
    rejected_questions: List[Dict[str, Any]] = field(default_factory=list)
    stats: BatchValidationStats = field(default_factory=BatchValidationStats)


def _first(raw: Dict[str, Any], *names: str) -> Any:
    for name in names:
        if raw.get(name) is not None:
            return raw[name]
    return None


def _coerce_index(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    return None


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def normalize_question(raw: Any) -> Question:
    """
    Map a loosely-shaped record onto a Question.

    Accepts snake_case and camelCase field names and either an integer
    correct index or an answer letter.
    """
    if isinstance(raw, Question):
        return raw
    if not isinstance(raw, dict):
        return Question()

    options = _first(raw, "options", "choices")
    if isinstance(options, list):
        options = ["" if o is None else str(o) for o in options]
    else:
        options = []

    concept_ids = _first(raw, "concept_ids", "conceptIds")
    if not isinstance(concept_ids, list):
        concept_ids = []

    prompt = _first(raw, "prompt", "question", "question_text", "text")

    return Question(
        prompt=str(prompt) if prompt is not None else "",
        options=options,
        correct_option_index=_coerce_index(
            _first(raw, "correct_option_index", "correctOptionIndex", "correct_index")
        ),
        correct_answer=_optional_str(_first(raw, "correct_answer", "correctAnswer", "answer")),
        explanation=_optional_str(raw.get("explanation")),
        source_reference=_optional_str(_first(raw, "source_reference", "sourceReference")),
        cognitive_level=_optional_str(_first(raw, "cognitive_level", "cognitiveLevel")),
        concept_tested=_optional_str(_first(raw, "concept_tested", "conceptTested")),
        concept_ids=[str(c) for c in concept_ids],
        id=_optional_str(raw.get("id")),
    )
