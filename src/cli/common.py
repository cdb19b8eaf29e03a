"""Shared helpers for CLI commands."""

from __future__ import annotations

import json
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

import typer

from core.config import get_settings
from core.errors import InvalidTransitionError, JobNotFoundError
from persistence.models import JobRecord, RowRecord, StepRecord
from services.engine import Engine, build_engine


def emit_json(data: Any) -> None:
    typer.echo(json.dumps(data, ensure_ascii=False, indent=2, default=str))


@contextmanager
def engine_session(data_dir: Path | None = None) -> Iterator[Engine]:
    """Build an engine for one command and stop its workers on exit."""
    settings = get_settings()
    if data_dir is not None:
        settings = settings.model_copy(update={"data_dir": str(data_dir)})
    engine = build_engine(settings)
    try:
        yield engine
    except (JobNotFoundError, InvalidTransitionError) as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    finally:
        engine.close()


def job_payload(job: JobRecord) -> dict[str, Any]:
    return {
        "job_id": job.job_id,
        "name": job.name,
        "owner": job.owner,
        "status": job.status,
        "total_rows": job.total_rows,
        "processed_rows": job.processed_rows,
        "progress": job.progress,
        "priority": job.priority,
        "failure_policy": job.failure_policy,
        "error_message": job.error_message,
        "created_at": job.created_at.isoformat(),
        "updated_at": job.updated_at.isoformat(),
    }


def row_payload(row: RowRecord) -> dict[str, Any]:
    return {
        "row_index": row.row_index,
        "question": row.question,
        "status": row.status,
        "resolved_question": row.resolved_question,
        "has_references": row.has_references,
        "referenced_rows": list(row.referenced_rows),
        "output": row.output,
        "error_message": row.error_message,
    }


def step_payload(step: StepRecord, *, full: bool = False) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "step_id": step.step_id,
        "row_index": step.row_index,
        "stage_index": step.stage_index,
        "stage_name": step.stage_name,
        "status": step.status,
        "model": step.model,
        "latency_ms": step.latency_ms,
        "cache_hit": step.cache_hit,
        "error_message": step.error_message,
    }
    if full:
        payload.update(
            input=step.input,
            prompt=step.prompt,
            output=step.output,
            metadata=step.metadata,
        )
    return payload


def preview(text: str | None, limit: int = 220) -> str:
    if not text:
        return ""
    collapsed = " ".join(text.split())
    if len(collapsed) <= limit:
        return collapsed
    return collapsed[: limit - 3].rstrip() + "..."


__all__ = [
    "emit_json",
    "engine_session",
    "job_payload",
    "preview",
    "row_payload",
    "step_payload",
]
