"""Generation backend boundary: protocol, LangChain adapter and retry policy."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol

from core.errors import (
    GenerationError,
    SystemicGenerationError,
    TransientGenerationError,
)
from core.telemetry import traceable_if_enabled

logger = logging.getLogger(__name__)

_RETRYABLE_ERROR_HINTS = (
    "429",
    "rate limit",
    "too many requests",
    "timeout",
    "timed out",
    "connecttimeout",
    "readtimeout",
    "temporarily unavailable",
    "overloaded",
    "503",
)
_SYSTEMIC_ERROR_HINTS = (
    "401",
    "unauthorized",
    "authentication",
    "invalid api key",
    "incorrect api key",
    "permission denied",
)
_DEFAULT_RETRY_BACKOFF_MS = 800


@dataclass(frozen=True)
class GenerationResult:
    text: str
    usage: dict[str, Any] = field(default_factory=dict)


class Generator(Protocol):
    def generate(
        self,
        *,
        model: str,
        system_prompt: str,
        user_prompt: str,
        temperature: float,
        max_tokens: int,
    ) -> GenerationResult: ...


class ChatModelLike(Protocol):
    def invoke(self, input: object) -> Any: ...


class LangChainGenerator:
    """Generator backed by ``init_chat_model`` with one chat model per config."""

    def __init__(
        self,
        *,
        model_provider: str | None = None,
        timeout: float | None = None,
        model_factory: Callable[..., ChatModelLike] | None = None,
    ) -> None:
        self._model_provider = model_provider
        self._timeout = timeout
        self._model_factory = model_factory
        self._models: dict[tuple[str, float, int], ChatModelLike] = {}

    @traceable_if_enabled(name="generate", run_type="llm")
    def generate(
        self,
        *,
        model: str,
        system_prompt: str,
        user_prompt: str,
        temperature: float,
        max_tokens: int,
    ) -> GenerationResult:
        from langchain_core.messages import HumanMessage, SystemMessage

        llm = self._get_model(model, temperature, max_tokens)
        messages = [SystemMessage(content=system_prompt), HumanMessage(content=user_prompt)]
        try:
            raw = llm.invoke(messages)
        except Exception as exc:
            raise classify_generation_error(exc) from exc

        content = getattr(raw, "content", raw)
        if isinstance(content, list):
            content = "".join(
                part.get("text", "") if isinstance(part, dict) else str(part) for part in content
            )
        usage = getattr(raw, "usage_metadata", None) or {}
        return GenerationResult(text=str(content), usage=dict(usage))

    def _get_model(self, model: str, temperature: float, max_tokens: int) -> ChatModelLike:
        cache_key = (model, temperature, max_tokens)
        cached = self._models.get(cache_key)
        if cached is not None:
            return cached
        kwargs: dict[str, Any] = {
            "temperature": temperature,
            "max_tokens": max_tokens,
            "max_retries": 0,
        }
        if self._model_provider:
            kwargs["model_provider"] = self._model_provider
        if self._timeout is not None:
            kwargs["timeout"] = self._timeout
        factory = self._model_factory or _init_chat_model
        llm = factory(model, **kwargs)
        self._models[cache_key] = llm
        return llm


def _init_chat_model(model: str, **kwargs: Any) -> ChatModelLike:
    from langchain.chat_models import init_chat_model

    return init_chat_model(model, **kwargs)


def classify_generation_error(exc: BaseException) -> GenerationError:
    if isinstance(exc, GenerationError):
        return exc
    text = f"{type(exc).__name__}: {exc}"
    if _is_systemic_error(text):
        return SystemicGenerationError(text)
    if _is_retryable_error(text):
        return TransientGenerationError(text)
    return GenerationError(text)


def generate_with_retry(
    generator: Generator,
    *,
    model: str,
    system_prompt: str,
    user_prompt: str,
    temperature: float,
    max_tokens: int,
    max_retries: int = 2,
    backoff_ms: int = _DEFAULT_RETRY_BACKOFF_MS,
    sleep: Callable[[float], None] = time.sleep,
) -> GenerationResult:
    """Call the backend, retrying transient failures with exponential backoff."""
    attempt = 0
    while True:
        try:
            return generator.generate(
                model=model,
                system_prompt=system_prompt,
                user_prompt=user_prompt,
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except Exception as exc:
            error = classify_generation_error(exc)
            if not isinstance(error, TransientGenerationError) or attempt >= max_retries:
                if error is exc:
                    raise
                raise error from exc
            backoff_seconds = (backoff_ms / 1000.0) * (2**attempt)
            logger.warning(
                "Transient generation error on %s (attempt %d/%d), retrying in %.1fs: %s",
                model,
                attempt + 1,
                max_retries + 1,
                backoff_seconds,
                error,
            )
            sleep(max(0.0, backoff_seconds))
            attempt += 1


def _is_retryable_error(error_text: str) -> bool:
    normalized = error_text.strip().lower()
    if not normalized:
        return False
    return any(token in normalized for token in _RETRYABLE_ERROR_HINTS)


def _is_systemic_error(error_text: str) -> bool:
    normalized = error_text.strip().lower()
    return any(token in normalized for token in _SYSTEMIC_ERROR_HINTS)


__all__ = [
    "ChatModelLike",
    "GenerationResult",
    "Generator",
    "LangChainGenerator",
    "classify_generation_error",
    "generate_with_retry",
]
