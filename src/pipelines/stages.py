"""Stage definitions and placeholder rendering for the row pipeline."""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Mapping

from core.config import Settings
from pipelines.prompts import (
    DRAFT_SYSTEM_PROMPT,
    DRAFT_USER_TEMPLATE,
    RESEARCH_SYSTEM_PROMPT,
    RESEARCH_USER_TEMPLATE,
    TAILOR_SYSTEM_PROMPT,
    TAILOR_USER_TEMPLATE,
)

RESEARCH_STAGE = "Reference Research"
DRAFT_STAGE = "Generic Draft Generation"
TAILOR_STAGE = "Tailored Response"

_TOKEN_RE = re.compile(r"\{\{([^{}]+)\}\}")


@dataclass(frozen=True)
class StageSpec:
    index: int
    key: str
    name: str
    model: str
    temperature: float
    max_tokens: int
    system_prompt: str
    user_template: str
    cached: bool


def default_stages(settings: Settings | None = None) -> tuple[StageSpec, StageSpec, StageSpec]:
    stages = (
        StageSpec(
            index=0,
            key="research",
            name=RESEARCH_STAGE,
            model="gpt-4o",
            temperature=0.1,
            max_tokens=2000,
            system_prompt=RESEARCH_SYSTEM_PROMPT,
            user_template=RESEARCH_USER_TEMPLATE,
            cached=True,
        ),
        StageSpec(
            index=1,
            key="draft",
            name=DRAFT_STAGE,
            model="gpt-4o",
            temperature=0.3,
            max_tokens=2000,
            system_prompt=DRAFT_SYSTEM_PROMPT,
            user_template=DRAFT_USER_TEMPLATE,
            cached=True,
        ),
        StageSpec(
            index=2,
            key="tailor",
            name=TAILOR_STAGE,
            model="o3-mini",
            temperature=0.4,
            max_tokens=3000,
            system_prompt=TAILOR_SYSTEM_PROMPT,
            user_template=TAILOR_USER_TEMPLATE,
            cached=False,
        ),
    )
    if settings is None:
        return stages
    research, draft, tailor = stages
    return (
        replace(
            research,
            model=settings.research_model,
            temperature=settings.research_temperature,
            max_tokens=settings.research_max_tokens,
        ),
        replace(
            draft,
            model=settings.draft_model,
            temperature=settings.draft_temperature,
            max_tokens=settings.draft_max_tokens,
        ),
        replace(
            tailor,
            model=settings.tailor_model,
            temperature=settings.tailor_temperature,
            max_tokens=settings.tailor_max_tokens,
        ),
    )


def render_template(template: str, values: Mapping[str, str]) -> str:
    """Substitute ``{{TOKEN}}`` placeholders literally in a single pass.

    Unknown tokens are left as written, and substituted values are never
    re-scanned, so user text containing braces cannot inject placeholders.
    """

    def _replace(match: re.Match[str]) -> str:
        token = match.group(1).strip()
        if token in values:
            return values[token]
        return match.group(0)

    return _TOKEN_RE.sub(_replace, template)


def build_prompt_values(
    *,
    question: str,
    original_question: str,
    stage_outputs: Mapping[str, str] | None = None,
    instructions: str | None = None,
    supporting_documents: str = "",
    previous_context: str = "",
    feedback: str = "",
    current_response: str = "",
) -> dict[str, str]:
    values = {
        "QUESTION": question,
        "FIRST_COLUMN": question,
        "ORIGINAL_QUESTION": original_question,
        "RFP_INSTRUCTIONS": instructions or "No specific instructions provided.",
        "ADDITIONAL_DOCUMENTS": supporting_documents or "No additional documents provided.",
        "PREVIOUS_CONTEXT": previous_context,
        "FEEDBACK": feedback,
        "CURRENT_RESPONSE": current_response or "Not yet generated.",
    }
    values.update(stage_outputs or {})
    return values


__all__ = [
    "DRAFT_STAGE",
    "RESEARCH_STAGE",
    "StageSpec",
    "TAILOR_STAGE",
    "build_prompt_values",
    "default_stages",
    "render_template",
]
