"""
Generation service client (Ollama-compatible HTTP API).
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx

from core.config import (
    LLM_BASE_URL,
    LLM_REQUEST_TIMEOUT,
    MODEL_PRIMARY,
)
from core.errors import GenerationError

logger = logging.getLogger(__name__)


@dataclass
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass
class GenerationResult:
    content: str
    usage: TokenUsage = field(default_factory=TokenUsage)
    model: Optional[str] = None


class GenerationClient:
    """Async client for text and vision generation (images are base64 strings)."""

    def __init__(
        self,
        base_url: str = LLM_BASE_URL,
        timeout: float = LLM_REQUEST_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    async def aclose(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def generate(
        self,
        prompt: str,
        model: str = MODEL_PRIMARY,
        temperature: float = 0.3,
        max_tokens: int = 2048,
        images: Optional[list] = None,
    ) -> GenerationResult:
        """
        Call the model once.

        Raises:
            GenerationError: transport failure or non-2xx response, carrying
                the HTTP status or a network error code.
        """
        url = f"{self.base_url}/api/generate"
        payload: Dict[str, Any] = {
            "model": model,
            "prompt": prompt,
            "options": {
                "temperature": temperature,
                "num_predict": max_tokens,
            },
            "stream": False,
        }
        if images:
            payload["images"] = images

        try:
            response = await self.client.post(url, json=payload)
            response.raise_for_status()
            result = response.json()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise GenerationError(
                f"Generation API error {status}: {e.response.text[:200]}",
                status_code=status,
                model=model,
            ) from e
        except httpx.TimeoutException as e:
            raise GenerationError(f"Generation API timeout: {e}", code="ETIMEDOUT", model=model) from e
        except httpx.ConnectError as e:
            raise GenerationError(f"Generation API unreachable: {e}", code="ECONNREFUSED", model=model) from e
        except (httpx.NetworkError, httpx.RemoteProtocolError) as e:
            raise GenerationError(f"Generation API connection reset: {e}", code="ECONNRESET", model=model) from e
        except ValueError as e:
            raise GenerationError(f"Generation API returned invalid JSON: {e}", model=model) from e

        return GenerationResult(
            content=result.get("response", ""),
            usage=TokenUsage(
                input_tokens=result.get("prompt_eval_count", 0) or 0,
                output_tokens=result.get("eval_count", 0) or 0,
            ),
            model=model,
        )

