"""Durable step records written around every stage execution."""

from __future__ import annotations

import logging
import sqlite3
import time
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable, TypeVar
from uuid import uuid4

from core.errors import PersistenceError
from persistence.models import StepRecord
from persistence.sqlite_store import SqliteStore
from services.state_machine import StepStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")

_PERSISTENCE_RETRY_DELAY = 0.05


def with_persistence_retry(
    operation: str,
    func: Callable[..., T],
    *args: Any,
    sleep: Callable[[float], None] = time.sleep,
    **kwargs: Any,
) -> T:
    """Run a store write, retrying once before surfacing a PersistenceError."""
    try:
        return func(*args, **kwargs)
    except sqlite3.Error as first:
        logger.warning("Store write '%s' failed, retrying once: %s", operation, first)
        sleep(_PERSISTENCE_RETRY_DELAY)
        try:
            return func(*args, **kwargs)
        except sqlite3.Error as exc:
            raise PersistenceError(f"{operation} failed: {exc}") from exc


class StepJournal:
    def __init__(self, store: SqliteStore, *, sleep: Callable[[float], None] = time.sleep) -> None:
        self._store = store
        self._sleep = sleep

    def begin(
        self,
        *,
        job_id: str,
        row_index: int,
        stage_index: int,
        stage_name: str,
        input_text: str,
        prompt: str,
        model: str,
    ) -> StepRecord:
        record = StepRecord(
            step_id=f"step_{uuid4().hex}",
            job_id=job_id,
            row_index=row_index,
            stage_index=stage_index,
            stage_name=stage_name,
            status=StepStatus.RUNNING.value,
            input=input_text,
            output=None,
            prompt=prompt,
            model=model,
            latency_ms=None,
            cache_hit=False,
            error_message=None,
            metadata=None,
            created_at=datetime.now(timezone.utc),
            completed_at=None,
        )
        self._write("insert step", self._store.insert_step, record)
        return record

    def complete(
        self,
        record: StepRecord,
        *,
        output: str,
        latency_ms: int,
        cache_hit: bool,
        metadata: dict[str, Any] | None = None,
    ) -> StepRecord:
        completed_at = datetime.now(timezone.utc)
        self._write(
            "complete step",
            self._store.update_step,
            record.step_id,
            status=StepStatus.COMPLETED.value,
            output=output,
            latency_ms=latency_ms,
            cache_hit=cache_hit,
            metadata=metadata,
            completed_at=completed_at,
        )
        return replace(
            record,
            status=StepStatus.COMPLETED.value,
            output=output,
            latency_ms=latency_ms,
            cache_hit=cache_hit,
            metadata=metadata,
            completed_at=completed_at,
        )

    def fail(self, record: StepRecord, *, error: str, latency_ms: int) -> None:
        self._write(
            "fail step",
            self._store.update_step,
            record.step_id,
            status=StepStatus.ERROR.value,
            error_message=error,
            latency_ms=latency_ms,
            completed_at=datetime.now(timezone.utc),
        )

    def completed_steps(self, job_id: str, row_index: int) -> dict[int, StepRecord]:
        steps = self._store.list_steps(job_id, row_index=row_index)
        return {
            step.stage_index: step
            for step in steps
            if step.status == StepStatus.COMPLETED.value
        }

    def discard_incomplete(self, job_id: str, row_index: int) -> int:
        """Drop running/error records left by an interrupted or failed attempt."""
        return self._write(
            "discard incomplete steps",
            self._store.delete_steps,
            job_id,
            row_index=row_index,
            statuses=[StepStatus.RUNNING.value, StepStatus.ERROR.value],
        )

    def _write(self, operation: str, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        return with_persistence_retry(operation, func, *args, sleep=self._sleep, **kwargs)


__all__ = ["StepJournal", "with_persistence_retry"]
