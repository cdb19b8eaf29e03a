"""Lightweight persistence records."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class JobRecord:
    job_id: str
    owner: str | None
    name: str
    status: str
    total_rows: int
    processed_rows: int
    priority: int
    failure_policy: str
    instructions: str | None
    error_message: str | None
    created_at: datetime
    updated_at: datetime
    worker_id: str | None = None
    heartbeat_at: datetime | None = None

    @property
    def progress(self) -> int:
        if self.total_rows <= 0:
            return 0
        return round(self.processed_rows / self.total_rows * 100)


@dataclass(frozen=True)
class RowRecord:
    job_id: str
    row_index: int
    question: str
    status: str
    resolved_question: str | None
    has_references: bool
    referenced_rows: tuple[int, ...]
    resolution_reasoning: str | None
    output: str | None
    error_message: str | None
    updated_at: datetime


@dataclass(frozen=True)
class StepRecord:
    step_id: str
    job_id: str
    row_index: int
    stage_index: int
    stage_name: str
    status: str
    input: str | None
    output: str | None
    prompt: str | None
    model: str | None
    latency_ms: int | None
    cache_hit: bool
    error_message: str | None
    metadata: dict[str, Any] | None
    created_at: datetime
    completed_at: datetime | None


@dataclass(frozen=True)
class JobDocumentRecord:
    document_id: str
    job_id: str
    file_name: str
    content: str
    created_at: datetime


@dataclass(frozen=True)
class CacheEntry:
    cache_key: str
    stage: str
    content_hash: str
    path: str
    model: str | None
    created_at: datetime
    last_accessed: datetime | None


@dataclass(frozen=True)
class ReferenceChunk:
    source_id: str
    chunk_index: int
    text: str
    token_count: int
    start: int
    end: int
    overlap_chars: int = 0


__all__ = [
    "CacheEntry",
    "JobDocumentRecord",
    "JobRecord",
    "ReferenceChunk",
    "RowRecord",
    "StepRecord",
]
