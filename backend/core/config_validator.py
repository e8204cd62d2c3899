"""
Configuration validation for Quizforge backend.
Validates prompt files, the generation service, models and settings on startup.
"""
import requests
from pathlib import Path
from typing import List, Dict, Any, Optional

from core.prompt_manager import REQUIRED_PROMPTS


class ConfigValidator:
    """Validates system configuration before the API starts serving."""

    def __init__(self, base_url: Optional[str] = None, prompts_dir: Optional[Path] = None):
        from core.config import LLM_BASE_URL, PROMPTS_DIR
        self.base_url = (base_url or LLM_BASE_URL).rstrip("/")
        self.prompts_dir = prompts_dir or PROMPTS_DIR
        self.errors: List[str] = []
        self.warnings: List[str] = []

    def validate_all(self) -> Dict[str, Any]:
        """
        Run all validation checks.

        Returns:
            {
                "valid": bool,
                "errors": List[str],
                "warnings": List[str]
            }
        """
        self.errors = []
        self.warnings = []

        self._validate_prompt_files()
        available_models = self._validate_generation_service()
        if available_models is not None:
            self._validate_models(available_models)
        self._validate_config_values()

        return {
            "valid": len(self.errors) == 0,
            "errors": self.errors,
            "warnings": self.warnings
        }

    def _validate_prompt_files(self):
        """Missing prompt files only warn: built-in fallback templates exist."""
        if not self.prompts_dir.exists():
            self.warnings.append(
                f"Prompts directory not found: {self.prompts_dir}. "
                "Built-in fallback templates will be used."
            )
            return

        for name in REQUIRED_PROMPTS:
            path = self.prompts_dir / f"{name}.txt"
            if not path.exists():
                self.warnings.append(
                    f"Prompt file missing: {name}.txt, using fallback template. "
                    f"Expected at: {path}"
                )
            elif path.stat().st_size == 0:
                self.warnings.append(f"Prompt file is empty: {name}.txt")

    def _validate_generation_service(self) -> Optional[List[str]]:
        """Check the generation service is reachable; returns its model names."""
        try:
            response = requests.get(f"{self.base_url}/api/tags", timeout=5)
            response.raise_for_status()
            return [model["name"] for model in response.json().get("models", [])]
        except requests.exceptions.ConnectionError:
            self.errors.append(
                f"Cannot connect to generation service at {self.base_url}. "
                "Ensure it is running (e.g. `ollama serve`)"
            )
        except requests.exceptions.Timeout:
            self.errors.append(
                f"Generation service timeout at {self.base_url}. "
                "Check network or service performance."
            )
        except (requests.exceptions.RequestException, ValueError, KeyError) as e:
            self.errors.append(f"Generation service error: {e}")
        return None

    def _validate_models(self, available_models: List[str]):
        """Check that every configured model is pulled."""
        from core.config import (
            MODEL_FACT_EXTRACTION,
            MODEL_QUESTION_GENERATION,
            MODEL_VALIDATION,
            MODEL_FAST,
        )

        required_models = {
            "Fact extraction": MODEL_FACT_EXTRACTION,
            "Question generation": MODEL_QUESTION_GENERATION,
            "Validation": MODEL_VALIDATION,
            "Language detection": MODEL_FAST,
        }

        for purpose, model_id in required_models.items():
            if model_id not in available_models:
                self.errors.append(
                    f"Required model not found: {purpose} ({model_id}). "
                    f"Pull it with: `ollama pull {model_id}`"
                )

        from core.config import MODEL_VISION
        if MODEL_VISION not in available_models:
            self.warnings.append(
                f"Vision model not found ({MODEL_VISION}); image text extraction will use fallbacks"
            )

    def _validate_config_values(self):
        """Validate configuration value ranges."""
        from core.config import (
            BATCH_DUPLICATE_THRESHOLD,
            OPTION_SIMILARITY_THRESHOLD,
            COURSE_DUPLICATE_THRESHOLD,
            WINDOW_OVERLAP_THRESHOLD,
            SEMANTIC_MIN_CONFIDENCE,
            MIN_CHUNK_SIZE,
            MAX_CHUNK_SIZE,
            TEXT_BREAKER_FAILURE_THRESHOLD,
            VISION_BREAKER_FAILURE_THRESHOLD,
            RETRY_BASE_DELAY,
            RETRY_MAX_DELAY,
            TEMPERATURE_EXTRACTION,
            TEMPERATURE_QUESTION_GENERATION,
            TEMPERATURE_VALIDATION,
        )

        thresholds = {
            "BATCH_DUPLICATE_THRESHOLD": BATCH_DUPLICATE_THRESHOLD,
            "OPTION_SIMILARITY_THRESHOLD": OPTION_SIMILARITY_THRESHOLD,
            "COURSE_DUPLICATE_THRESHOLD": COURSE_DUPLICATE_THRESHOLD,
            "WINDOW_OVERLAP_THRESHOLD": WINDOW_OVERLAP_THRESHOLD,
            "SEMANTIC_MIN_CONFIDENCE": SEMANTIC_MIN_CONFIDENCE,
        }
        for name, value in thresholds.items():
            if not (0.0 <= value <= 1.0):
                self.errors.append(f"{name} ({value}) must be between 0.0 and 1.0")

        if MIN_CHUNK_SIZE >= MAX_CHUNK_SIZE:
            self.errors.append(
                f"MIN_CHUNK_SIZE ({MIN_CHUNK_SIZE}) must be < MAX_CHUNK_SIZE ({MAX_CHUNK_SIZE})"
            )

        for name, value in (
            ("TEXT_BREAKER_FAILURE_THRESHOLD", TEXT_BREAKER_FAILURE_THRESHOLD),
            ("VISION_BREAKER_FAILURE_THRESHOLD", VISION_BREAKER_FAILURE_THRESHOLD),
        ):
            if value < 1:
                self.errors.append(f"{name} ({value}) must be at least 1")

        if RETRY_BASE_DELAY > RETRY_MAX_DELAY:
            self.errors.append(
                f"RETRY_BASE_DELAY ({RETRY_BASE_DELAY}) must be <= RETRY_MAX_DELAY ({RETRY_MAX_DELAY})"
            )

        for name, value in (
            ("TEMPERATURE_EXTRACTION", TEMPERATURE_EXTRACTION),
            ("TEMPERATURE_QUESTION_GENERATION", TEMPERATURE_QUESTION_GENERATION),
            ("TEMPERATURE_VALIDATION", TEMPERATURE_VALIDATION),
        ):
            if not (0.0 <= value <= 1.0):
                self.warnings.append(f"{name} ({value}) outside normal range [0.0, 1.0]")


# Global validator instance
config_validator = ConfigValidator()
