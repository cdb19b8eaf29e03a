"""External response schemas for jobs, rows, steps and events."""

from __future__ import annotations

from datetime import datetime
from typing import Any, List

from pydantic import BaseModel, ConfigDict, Field

from persistence.models import JobRecord, RowRecord, StepRecord
from services.notifications import Notification


class JobResponse(BaseModel):
    job_id: str
    name: str
    owner: str | None = None
    status: str
    total_rows: int
    processed_rows: int
    progress: int
    priority: int
    failure_policy: str
    instructions: str | None = None
    error_message: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def from_record(cls, record: JobRecord) -> "JobResponse":
        return cls(
            job_id=record.job_id,
            name=record.name,
            owner=record.owner,
            status=record.status,
            total_rows=record.total_rows,
            processed_rows=record.processed_rows,
            progress=record.progress,
            priority=record.priority,
            failure_policy=record.failure_policy,
            instructions=record.instructions,
            error_message=record.error_message,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


class RowResponse(BaseModel):
    row_index: int
    question: str
    status: str
    resolved_question: str | None = None
    has_references: bool = False
    referenced_rows: List[int] = Field(default_factory=list)
    resolution_reasoning: str | None = None
    output: str | None = None
    error_message: str | None = None

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def from_record(cls, record: RowRecord) -> "RowResponse":
        return cls(
            row_index=record.row_index,
            question=record.question,
            status=record.status,
            resolved_question=record.resolved_question,
            has_references=record.has_references,
            referenced_rows=list(record.referenced_rows),
            resolution_reasoning=record.resolution_reasoning,
            output=record.output,
            error_message=record.error_message,
        )


class StepResponse(BaseModel):
    step_id: str
    row_index: int
    stage_index: int
    stage_name: str
    status: str
    input: str | None = None
    output: str | None = None
    prompt: str | None = None
    model: str | None = None
    latency_ms: int | None = None
    cache_hit: bool = False
    error_message: str | None = None
    metadata: dict[str, Any] | None = None
    created_at: datetime
    completed_at: datetime | None = None

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def from_record(cls, record: StepRecord) -> "StepResponse":
        return cls(
            step_id=record.step_id,
            row_index=record.row_index,
            stage_index=record.stage_index,
            stage_name=record.stage_name,
            status=record.status,
            input=record.input,
            output=record.output,
            prompt=record.prompt,
            model=record.model,
            latency_ms=record.latency_ms,
            cache_hit=record.cache_hit,
            error_message=record.error_message,
            metadata=record.metadata,
            created_at=record.created_at,
            completed_at=record.completed_at,
        )


class EventResponse(BaseModel):
    event: str
    job_id: str
    row_index: int | None = None
    payload: dict[str, Any] = Field(default_factory=dict)
    sequence: int
    emitted_at: datetime

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def from_notification(cls, notification: Notification) -> "EventResponse":
        return cls(
            event=notification.event.value,
            job_id=notification.job_id,
            row_index=notification.row_index,
            payload=dict(notification.payload),
            sequence=notification.sequence,
            emitted_at=notification.emitted_at,
        )


class CacheStageStats(BaseModel):
    stage: str
    count: int


class CacheStatsResponse(BaseModel):
    scope: str
    stages: List[CacheStageStats] = Field(default_factory=list)


__all__ = [
    "CacheStageStats",
    "CacheStatsResponse",
    "EventResponse",
    "JobResponse",
    "RowResponse",
    "StepResponse",
]
