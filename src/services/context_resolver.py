"""Rewrite questions that lean on earlier rows into self-contained questions."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Callable, Sequence

from pydantic import BaseModel, ConfigDict, ValidationError

from services.generation import Generator, generate_with_retry
from utils.llm_json import extract_json_object

logger = logging.getLogger(__name__)

_FIRST_ROW_REASONING = "First question requires no additional context"

CONTEXT_SYSTEM_PROMPT = """You analyze questions from a questionnaire in which later questions may depend on earlier ones.

Decide whether the CURRENT question references any PREVIOUS question. Look for:
1. Explicit references: "the above", "previous question", "as mentioned", "question 3".
2. Implicit references: pronouns or demonstratives ("it", "this", "that solution", "these features") whose subject is only defined earlier.
3. Contextual dependencies: follow-ups such as "please elaborate", "provide more detail", "expand on".
4. Implementation-specific references: "the proposed solution", "your platform", when an earlier question defines it.

If the question depends on earlier questions, rewrite it as a standalone question that carries the needed context while keeping the original intent and tone. If it is already standalone, return it unchanged.

Return ONLY valid JSON with exactly these keys:
{"resolvedQuestion": string, "hasReferences": boolean, "referencedQuestions": [question numbers as integers], "reasoning": string}
"""


class _ResolutionResponse(BaseModel):
    resolvedQuestion: str
    hasReferences: bool
    referencedQuestions: list[int]
    reasoning: str

    model_config = ConfigDict(extra="ignore")


@dataclass(frozen=True)
class ContextResolution:
    resolved_question: str
    has_references: bool
    referenced_rows: list[int] = field(default_factory=list)
    reasoning: str = ""


@dataclass(frozen=True)
class ContextResolverConfig:
    model: str = "gpt-4o"
    temperature: float = 0.1
    max_tokens: int = 1000
    max_retries: int = 2
    backoff_ms: int = 800


class ContextResolver:
    def __init__(
        self,
        generator: Generator,
        config: ContextResolverConfig | None = None,
        *,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self._generator = generator
        self._config = config or ContextResolverConfig()
        self._sleep = sleep

    def resolve(self, questions: Sequence[str], row_number: int) -> ContextResolution:
        """Resolve the question at one-based ``row_number`` against earlier rows."""
        if row_number < 1 or row_number > len(questions):
            raise ValueError(f"row_number {row_number} out of range 1..{len(questions)}")
        current = questions[row_number - 1]
        if row_number == 1:
            return ContextResolution(
                resolved_question=current,
                has_references=False,
                referenced_rows=[],
                reasoning=_FIRST_ROW_REASONING,
            )

        try:
            response = self._ask(current, questions[: row_number - 1], row_number)
        except Exception as exc:
            logger.warning("Context resolution failed for row %d: %s", row_number, exc)
            return ContextResolution(
                resolved_question=current,
                has_references=False,
                referenced_rows=[],
                reasoning=f"Context resolution failed: {exc}",
            )

        referenced = sorted({n for n in response.referencedQuestions if 1 <= n < row_number})
        resolved = response.resolvedQuestion.strip() or current
        return ContextResolution(
            resolved_question=resolved,
            has_references=bool(response.hasReferences and referenced),
            referenced_rows=referenced,
            reasoning=response.reasoning,
        )

    def _ask(self, current: str, previous: Sequence[str], row_number: int) -> _ResolutionResponse:
        history = "\n".join(
            f"Question {number}: {text}" for number, text in enumerate(previous, start=1)
        )
        user_prompt = (
            f"PREVIOUS QUESTIONS:\n{history}\n\n"
            f"CURRENT QUESTION (Question {row_number}): {current}\n\n"
            "Return the JSON object now."
        )
        kwargs = {}
        if self._sleep is not None:
            kwargs["sleep"] = self._sleep
        result = generate_with_retry(
            self._generator,
            model=self._config.model,
            system_prompt=CONTEXT_SYSTEM_PROMPT,
            user_prompt=user_prompt,
            temperature=self._config.temperature,
            max_tokens=self._config.max_tokens,
            max_retries=self._config.max_retries,
            backoff_ms=self._config.backoff_ms,
            **kwargs,
        )
        return _parse_resolution(result.text)


def _parse_resolution(text: str) -> _ResolutionResponse:
    extracted = extract_json_object(text)
    try:
        payload = json.loads(extracted)
    except json.JSONDecodeError as exc:
        raise ValueError("Context resolver did not return valid JSON") from exc
    try:
        return _ResolutionResponse.model_validate(payload)
    except ValidationError as exc:
        raise ValueError(f"Context resolver response missing fields: {exc.error_count()} error(s)") from exc


__all__ = [
    "CONTEXT_SYSTEM_PROMPT",
    "ContextResolution",
    "ContextResolver",
    "ContextResolverConfig",
]
