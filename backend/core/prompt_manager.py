"""
Centralized prompt file management with fallback templates.

Templates use str.format placeholders; literal JSON braces are doubled.
"""
import logging
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)

REQUIRED_PROMPTS = (
    "fact_extraction",
    "answer_adjudication",
    "question_generation",
    "language_detection",
    "image_transcription",
)


class PromptManager:
    """Manages prompt file loading with consistent fallback behavior."""

    def __init__(self, prompts_dir: Optional[Path] = None):
        from core.config import PROMPTS_DIR
        self.prompts_dir = prompts_dir or PROMPTS_DIR
        self.loaded_prompts: Dict[str, str] = {}

        self.fallback_templates = {
            "fact_extraction": FACT_EXTRACTION_FALLBACK,
            "answer_adjudication": ANSWER_ADJUDICATION_FALLBACK,
            "question_generation": QUESTION_GENERATION_FALLBACK,
            "language_detection": LANGUAGE_DETECTION_FALLBACK,
            "image_transcription": IMAGE_TRANSCRIPTION_FALLBACK,
        }

    def get_prompt(self, prompt_name: str) -> str:
        """
        Load prompt by name with fallback.

        Args:
            prompt_name: Name of prompt file (without .txt extension)

        Returns:
            Prompt template string
        """
        if prompt_name in self.loaded_prompts:
            return self.loaded_prompts[prompt_name]

        prompt_file = self.prompts_dir / f"{prompt_name}.txt"

        if prompt_file.exists():
            try:
                template = prompt_file.read_text(encoding="utf-8")
                if not template.strip():
                    raise ValueError(f"Prompt file is empty: {prompt_file}")
                self.loaded_prompts[prompt_name] = template
                return template
            except (OSError, ValueError) as e:
                logger.warning(f"Failed to load prompt file {prompt_file}: {e}")

        if prompt_name in self.fallback_templates:
            logger.info(f"Using fallback template for: {prompt_name}")
            template = self.fallback_templates[prompt_name]
            self.loaded_prompts[prompt_name] = template
            return template

        raise FileNotFoundError(
            f"Prompt file not found and no fallback available: {prompt_name}.txt. "
            f"Expected at: {prompt_file}"
        )

    def render(self, prompt_name: str, **values) -> str:
        return self.get_prompt(prompt_name).format(**values)


FACT_EXTRACTION_FALLBACK = """You are a knowledge extraction assistant.

Extract the atomic, independently verifiable facts from the chapter "{chapter_title}".
{language_instruction}

SOURCE TEXT:
\"\"\"
{source_text}
\"\"\"

RULES:
1. One claim per fact, no opinions or speculation
2. "source_quote" MUST be copied verbatim from the source text
3. category is one of: definition, formula, process, relationship, statistic, example
4. confidence is between 0 and 1

Respond with JSON only:
{{"facts": [{{"statement": "...", "source_quote": "...", "category": "definition", "confidence": 0.9, "keywords": ["..."]}}]}}
"""

ANSWER_ADJUDICATION_FALLBACK = """You are checking a quiz question against its source material.

SOURCE TEXT:
\"\"\"
{source_text}
\"\"\"

QUESTION: {prompt}
OPTIONS:
{options}
STATED CORRECT ANSWER: {correct_answer}

Is the stated answer explicitly supported by the source text? Are the other options clearly wrong according to the source?

Respond with JSON only:
{{"is_valid": true, "confidence": 0.0, "issues": ["..."], "suggestion": "..."}}
"""

QUESTION_GENERATION_FALLBACK = """You are writing multiple-choice quiz questions for the chapter "{chapter_title}".
{language_instruction}

CHAPTER TEXT:
\"\"\"
{chapter_text}
\"\"\"

Write {count} questions about the subject matter only (never about exams, schedules or course logistics).
Each question has exactly 4 distinct options and one correct answer supported by the text.

Respond with JSON only:
{{"questions": [{{"prompt": "...", "options": ["...", "...", "...", "..."], "correct_option_index": 0, "explanation": "...", "source_reference": "verbatim excerpt", "cognitive_level": "remember|understand|apply", "concept_tested": "..."}}]}}
"""

LANGUAGE_DETECTION_FALLBACK = """Identify the language of the following text. Answer with the ISO 639-1 code only (for example: en, fr, de).

TEXT:
\"\"\"
{text}
\"\"\"
"""

IMAGE_TRANSCRIPTION_FALLBACK = """Transcribe all readable text in this image exactly as written, preserving headings and line breaks. Output the text only."""


# Global prompt manager instance
prompt_manager = PromptManager()
