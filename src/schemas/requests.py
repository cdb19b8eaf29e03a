"""External request schemas for job control."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class DocumentInput(BaseModel):
    file_name: str = Field(min_length=1)
    content: str

    model_config = ConfigDict(extra="forbid")


class CreateJobRequest(BaseModel):
    """A questionnaire to process; one row per question, in order."""

    name: str = Field(min_length=1)
    questions: list[str] = Field(min_length=1)
    owner: str | None = None
    priority: int = 0
    failure_policy: Literal["continue", "fail_fast"] | None = None
    instructions: str | None = None
    documents: list[DocumentInput] = Field(default_factory=list)
    autostart: bool = False

    model_config = ConfigDict(extra="forbid")

    @field_validator("questions")
    @classmethod
    def _require_text(cls, value: list[str]) -> list[str]:
        cleaned = [item.strip() for item in value if item and item.strip()]
        if not cleaned:
            raise ValueError("Provide at least one non-empty question.")
        return cleaned


class RowFeedback(BaseModel):
    row_index: int = Field(ge=0)
    feedback: str = Field(min_length=1)

    model_config = ConfigDict(extra="forbid")


class ReprocessRowsRequest(BaseModel):
    """Feedback for completed rows whose tailored response should be regenerated."""

    rows: list[RowFeedback] = Field(min_length=1)

    model_config = ConfigDict(extra="forbid")

    @field_validator("rows")
    @classmethod
    def _unique_rows(cls, value: list[RowFeedback]) -> list[RowFeedback]:
        indexes = [item.row_index for item in value]
        if len(indexes) != len(set(indexes)):
            raise ValueError("Each row may appear only once.")
        return value


class CacheInvalidateRequest(BaseModel):
    stage: Literal["research", "draft"] | None = None
    key: str | None = None

    model_config = ConfigDict(extra="forbid")


__all__ = [
    "CacheInvalidateRequest",
    "CreateJobRequest",
    "DocumentInput",
    "ReprocessRowsRequest",
    "RowFeedback",
]
