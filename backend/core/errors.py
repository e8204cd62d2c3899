"""
Exception types shared across the generation pipeline.
"""
from typing import Optional


class PipelineError(Exception):
    """Base class for pipeline errors."""
    pass


class GenerationError(PipelineError):
    """Raised when a call to the generation service fails."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        model: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.model = model


class CircuitOpenError(PipelineError):
    """Raised when a call is rejected by an open circuit breaker."""

    def __init__(self, name: str, reset_timeout: float, remaining: float):
        self.name = name
        self.reset_timeout = reset_timeout
        self.remaining = max(0.0, remaining)
        super().__init__(
            f"Circuit breaker '{name}' is open. "
            f"Service unavailable, retry in {int(self.remaining + 0.999)}s."
        )


class ConfigurationError(PipelineError):
    """Raised when configuration is invalid."""
    pass


class ResponseParseError(PipelineError):
    """Raised when model output cannot be parsed into the expected structure."""
    pass
