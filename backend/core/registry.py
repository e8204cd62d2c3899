"""
Process-wide reliability registry.

Built once at startup (create_registry) and passed to whatever needs the
shared breakers, caches, generation client and call logger. Tests build
their own isolated instance.
"""
import base64
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Optional

from core.config import (
    TEXT_BREAKER_FAILURE_THRESHOLD,
    TEXT_BREAKER_RESET_TIMEOUT,
    TEXT_BREAKER_HALF_OPEN_MAX_ATTEMPTS,
    VISION_BREAKER_FAILURE_THRESHOLD,
    VISION_BREAKER_RESET_TIMEOUT,
    VISION_BREAKER_HALF_OPEN_MAX_ATTEMPTS,
    CLASSIFICATION_CACHE_MAX_SIZE,
    CLASSIFICATION_CACHE_TTL,
    FACTS_CACHE_MAX_SIZE,
    FACTS_CACHE_TTL,
    GENERATION_CACHE_MAX_SIZE,
    GENERATION_CACHE_TTL,
    MODEL_VISION,
    MAX_TOKENS_OCR,
)
from core.errors import CircuitOpenError
from core.llm_client import GenerationClient, GenerationResult
from core.llm_logger import LLMCallLogger, LLMLogContext, with_logging
from core.prompt_manager import PromptManager
from services.reliability.cache import LLMCache
from services.reliability.circuit_breaker import CircuitBreaker, CircuitBreakerOptions
from services.reliability.retry import FAST_RETRY_OPTIONS, RetryOptions, with_retry

logger = logging.getLogger(__name__)

TEXT_BREAKER = "text"
VISION_BREAKER = "vision"
CLASSIFICATION_CACHE = "classification"
FACTS_CACHE = "facts"
GENERATION_CACHE = "generation"


@dataclass
class ReliabilityRegistry:
    client: GenerationClient
    call_logger: LLMCallLogger
    prompts: PromptManager
    breakers: Dict[str, CircuitBreaker] = field(default_factory=dict)
    caches: Dict[str, LLMCache] = field(default_factory=dict)

    def breaker(self, name: str) -> CircuitBreaker:
        try:
            return self.breakers[name]
        except KeyError:
            raise KeyError(f"Unknown circuit breaker: {name}") from None

    def cache(self, name: str) -> LLMCache:
        try:
            return self.caches[name]
        except KeyError:
            raise KeyError(f"Unknown cache: {name}") from None

    async def generate(
        self,
        function: str,
        prompt: str,
        model: str,
        temperature: float,
        max_tokens: int,
        breaker_name: str = TEXT_BREAKER,
        retry_options: Optional[RetryOptions] = None,
        cache_name: Optional[str] = None,
        cache_params: Optional[Dict[str, Any]] = None,
        fallback: Optional[Callable[[], Any]] = None,
        images: Optional[list] = None,
    ) -> Any:
        """
        One guarded generation call: breaker(retry(client.generate)).

        Returns the generated text, or whatever the fallback returns when
        the breaker rejects or a failure opens it. With cache_name set the
        text is memoized under a key derived from the call parameters.
        """
        breaker = self.breaker(breaker_name)
        cache = self.cache(cache_name) if cache_name else None

        async def guarded(ctx: LLMLogContext) -> Any:
            ctx.set_metadata(breaker=breaker.name, cache=cache_name, images=len(images or []))

            key = None
            if cache is not None:
                key = LLMCache.generate_key(cache_params or {
                    "function": function,
                    "prompt": prompt,
                    "model": model,
                    "temperature": temperature,
                    "max_tokens": max_tokens,
                })
                cached = cache.get(key)
                if cached is not None:
                    ctx.set_cache_hit()
                    return cached

            base = retry_options or RetryOptions()
            user_on_retry = base.on_retry

            def on_retry(attempt, error, delay):
                ctx.increment_retry()
                if user_on_retry:
                    user_on_retry(attempt, error, delay)

            options = replace(base, on_retry=on_retry)

            state = {"error": None, "fallback": False}

            async def attempt() -> GenerationResult:
                try:
                    return await self.client.generate(
                        prompt,
                        model=model,
                        temperature=temperature,
                        max_tokens=max_tokens,
                        images=images,
                    )
                except Exception as e:
                    state["error"] = e
                    raise

            def use_fallback():
                state["fallback"] = True
                return fallback()

            result = await breaker.call(
                lambda: with_retry(attempt, options),
                use_fallback if fallback is not None else None,
            )

            if state["fallback"]:
                # Resolved by the fallback, so the call itself counts as failed
                ctx.set_fallback_used()
                ctx.failure(state["error"] or CircuitOpenError(
                    breaker.name, breaker.options.reset_timeout, 0.0
                ))
                return result

            ctx.set_tokens(result.usage.input_tokens, result.usage.output_tokens)
            if cache is not None and key is not None:
                cache.set(key, result.content)
            return result.content

        return await with_logging(self.call_logger, function, model, guarded)

    async def extract_image_text(
        self,
        image: bytes,
        prompt: Optional[str] = None,
        fallback: Optional[Callable[[], Any]] = None,
    ) -> Any:
        """OCR one image through the vision breaker with the fast retry profile."""
        encoded = base64.b64encode(image).decode("ascii")
        text = await self.generate(
            "extract_image_text",
            prompt or self.prompts.get_prompt("image_transcription"),
            model=MODEL_VISION,
            temperature=0.0,
            max_tokens=MAX_TOKENS_OCR,
            breaker_name=VISION_BREAKER,
            retry_options=FAST_RETRY_OPTIONS,
            fallback=fallback,
            images=[encoded],
        )
        return text.strip() if isinstance(text, str) else text

    def get_stats(self) -> Dict[str, Any]:
        return {
            "breakers": {name: b.get_stats() for name, b in self.breakers.items()},
            "caches": {name: c.get_stats() for name, c in self.caches.items()},
            "llm_calls": self.call_logger.get_stats(),
        }


def create_registry(
    client: Optional[GenerationClient] = None,
    call_logger: Optional[LLMCallLogger] = None,
    prompts: Optional[PromptManager] = None,
) -> ReliabilityRegistry:
    """Build the registry with the configured breakers and caches."""
    registry = ReliabilityRegistry(
        client=client or GenerationClient(),
        call_logger=call_logger or LLMCallLogger(),
        prompts=prompts or PromptManager(),
    )

    registry.breakers[TEXT_BREAKER] = CircuitBreaker(
        "generation-text",
        CircuitBreakerOptions(
            failure_threshold=TEXT_BREAKER_FAILURE_THRESHOLD,
            reset_timeout=TEXT_BREAKER_RESET_TIMEOUT,
            half_open_max_attempts=TEXT_BREAKER_HALF_OPEN_MAX_ATTEMPTS,
        ),
    )
    registry.breakers[VISION_BREAKER] = CircuitBreaker(
        "generation-vision",
        CircuitBreakerOptions(
            failure_threshold=VISION_BREAKER_FAILURE_THRESHOLD,
            reset_timeout=VISION_BREAKER_RESET_TIMEOUT,
            half_open_max_attempts=VISION_BREAKER_HALF_OPEN_MAX_ATTEMPTS,
        ),
    )

    registry.caches[CLASSIFICATION_CACHE] = LLMCache(
        CLASSIFICATION_CACHE, CLASSIFICATION_CACHE_MAX_SIZE, CLASSIFICATION_CACHE_TTL
    )
    registry.caches[FACTS_CACHE] = LLMCache(FACTS_CACHE, FACTS_CACHE_MAX_SIZE, FACTS_CACHE_TTL)
    registry.caches[GENERATION_CACHE] = LLMCache(
        GENERATION_CACHE, GENERATION_CACHE_MAX_SIZE, GENERATION_CACHE_TTL
    )

    logger.info(
        f"Reliability registry ready: breakers={list(registry.breakers)} "
        f"caches={list(registry.caches)}"
    )
    return registry
