"""Sequential row loop for one job, run on the job's worker thread.

A worker first claims the job's lease in the store and refreshes it from a
heartbeat thread, so two processes never run the same job. A lease whose
heartbeat is older than ``lease_seconds`` is treated as abandoned.
"""

from __future__ import annotations

import logging
import os
import socket
import sqlite3
import threading
import time
from contextlib import contextmanager
from typing import Any, Iterator, Mapping
from uuid import uuid4

from core.errors import PersistenceError, SystemicGenerationError
from persistence.models import JobRecord, RowRecord
from persistence.sqlite_store import SqliteStore
from pipelines.graphs.row_graph import build_row_graph
from services.io import format_supporting_documents
from services.journal import with_persistence_retry
from services.notifications import NotificationEvent, NotificationHub
from services.pipeline_executor import PipelineExecutor, RowContext
from services.state_machine import (
    JobEvent,
    JobStatus,
    RowStatus,
    TERMINAL_ROW_STATUSES,
    allowed_sources,
    next_status,
)

logger = logging.getLogger(__name__)

_TERMINAL_ROW_VALUES = {status.value for status in TERMINAL_ROW_STATUSES}
_CLAIM_POLL_SECONDS = 0.5


class _Interrupted(Exception):
    """Raised internally when a stop is requested at a stage boundary."""


class JobRunner:
    def __init__(
        self,
        *,
        store: SqliteStore,
        executor: PipelineExecutor,
        notifier: NotificationHub,
        graph: Any | None = None,
        worker_id: str | None = None,
        lease_seconds: float = 60.0,
    ) -> None:
        self._store = store
        self._executor = executor
        self._notifier = notifier
        self._graph = graph or build_row_graph()
        self._worker_id = worker_id or f"{socket.gethostname()}:{os.getpid()}:{uuid4().hex[:8]}"
        self._lease_seconds = lease_seconds

    @property
    def worker_id(self) -> str:
        return self._worker_id

    def claim(self, job_id: str) -> bool:
        """Take the job's lease now; False when another live worker holds it."""
        return self._write(
            "claim job",
            self._store.claim_job,
            job_id,
            worker_id=self._worker_id,
            lease_seconds=self._lease_seconds,
        )

    def run(
        self,
        job_id: str,
        stop_event: threading.Event,
        revisions: Mapping[int, str] | None = None,
    ) -> str:
        """Process every non-terminal row in order; return the job status on exit.

        ``revisions`` maps zero-based row indexes to user feedback; those rows
        get a regenerated tailored response before the regular row loop runs.
        """
        job = self._store.get_job(job_id)
        if job is None or job.status != JobStatus.IN_PROGRESS.value:
            return job.status if job is not None else JobStatus.ERROR.value

        with self._lease(job_id, stop_event) as owned:
            if not owned:
                logger.warning("Job %s is held by another worker; not starting a second loop", job_id)
                return self._current_status(job_id)
            return self._run_owned(job, stop_event, revisions or {})

    def _run_owned(self, job: JobRecord, stop_event: threading.Event, revisions: Mapping[int, str]) -> str:
        job_id = job.job_id
        rows = self._store.list_rows(job_id)
        questions = [row.question for row in rows]
        documents = format_supporting_documents(
            [(doc.file_name, doc.content) for doc in self._store.list_documents(job_id)]
        )

        if revisions:
            by_index = {row.row_index: row for row in rows}
            self._notifier.log(job_id, f"Revising {len(revisions)} rows from feedback")
            for row_index, feedback in sorted(revisions.items()):
                if self._should_stop(job_id, stop_event):
                    return self._current_status(job_id)
                row = by_index.get(row_index)
                if row is None or row.status != RowStatus.COMPLETED.value:
                    logger.info("Skipping revision of row %d in job %s: not completed", row_index, job_id)
                    continue
                try:
                    self._revise_row(job, row, feedback, questions, documents)
                except (SystemicGenerationError, PersistenceError) as exc:
                    self._fail_job(job_id, f"Row {row_index + 1}: {exc}")
                    return self._current_status(job_id)
                except Exception as exc:
                    logger.warning("Revision of row %d in job %s failed: %s", row_index, job_id, exc)
                    self._notifier.log(
                        job_id,
                        f"Row {row_index + 1} revision failed; keeping the previous response: {exc}",
                        level="error",
                        row_index=row_index,
                    )
            rows = self._store.list_rows(job_id)

        self._notifier.log(job_id, f"Processing {len(rows)} rows")
        for row in rows:
            if row.status in _TERMINAL_ROW_VALUES:
                continue
            if self._should_stop(job_id, stop_event):
                return self._current_status(job_id)
            try:
                self._process_row(job, row, questions, documents, stop_event)
            except _Interrupted:
                logger.info("Job %s stopped before row %d finished", job_id, row.row_index)
                return self._current_status(job_id)
            except (SystemicGenerationError, PersistenceError) as exc:
                message = f"Row {row.row_index + 1}: {exc}"
                self._mark_row_error(job, row, str(exc))
                self._fail_job(job_id, message)
                return self._current_status(job_id)
            except Exception as exc:
                logger.warning("Row %d of job %s failed: %s", row.row_index, job_id, exc)
                self._mark_row_error(job, row, str(exc) or type(exc).__name__)
                if job.failure_policy == "fail_fast":
                    self._fail_job(job_id, f"Row {row.row_index + 1}: {exc}")
                    return self._current_status(job_id)

        self._complete_job(job_id)
        return self._current_status(job_id)

    def _revise_row(
        self,
        job: JobRecord,
        row: RowRecord,
        feedback: str,
        questions: list[str],
        documents: str,
    ) -> None:
        completed = self._executor.journal.completed_steps(job.job_id, row.row_index)
        research, draft = completed.get(0), completed.get(1)
        if research is None or draft is None:
            raise ValueError("no research and draft to revise from")
        ctx = RowContext(
            job_id=job.job_id,
            row_index=row.row_index,
            questions=questions,
            instructions=job.instructions,
            supporting_documents=documents,
        )
        outcome = self._executor.revise_row(
            ctx,
            resolved_question=row.resolved_question or row.question,
            research_output=research.output or "",
            draft_output=draft.output or "",
            current_response=row.output or "",
            feedback=feedback,
            previous_context=self._executor.previous_context(ctx, row.referenced_rows),
        )
        self._write(
            "store revised row",
            self._store.update_row,
            job.job_id,
            row.row_index,
            output=outcome.output,
            error_message=None,
        )
        self._notifier.emit(
            NotificationEvent.ROW_PROCESSED,
            job.job_id,
            row_index=row.row_index,
            status=RowStatus.COMPLETED.value,
            revised=True,
            total_rows=job.total_rows,
        )

    def _process_row(
        self,
        job: JobRecord,
        row: RowRecord,
        questions: list[str],
        documents: str,
        stop_event: threading.Event,
    ) -> None:
        journal = self._executor.journal
        journal.discard_incomplete(job.job_id, row.row_index)
        completed = journal.completed_steps(job.job_id, row.row_index)
        self._write("mark row running", self._store.update_row, job.job_id, row.row_index, status=RowStatus.RUNNING.value)

        state: dict[str, Any] = {
            "executor": self._executor,
            "job_id": job.job_id,
            "row_index": row.row_index,
            "questions": questions,
            "instructions": job.instructions,
            "supporting_documents": documents,
            "completed_stages": sorted(completed),
        }
        if row.resolved_question:
            state.update(
                resolved_question=row.resolved_question,
                has_references=row.has_references,
                referenced_rows=list(row.referenced_rows),
                resolution_reasoning=row.resolution_reasoning or "",
            )
        if 0 in completed:
            state["research_output"] = completed[0].output or ""
        if 1 in completed:
            state["draft_output"] = completed[1].output or ""
        if 2 in completed:
            state["final_output"] = completed[2].output or ""

        final_output = state.get("final_output")
        for update in self._graph.stream(state, stream_mode="updates"):
            for values in update.values():
                if isinstance(values, dict) and values.get("final_output") is not None:
                    final_output = values["final_output"]
            if final_output is None and self._should_stop(job.job_id, stop_event):
                raise _Interrupted()

        self._write(
            "complete row",
            self._store.update_row,
            job.job_id,
            row.row_index,
            status=RowStatus.COMPLETED.value,
            output=final_output or "",
            error_message=None,
        )
        processed = self._write("count processed rows", self._store.refresh_processed_rows, job.job_id)
        self._notifier.emit(
            NotificationEvent.ROW_PROCESSED,
            job.job_id,
            row_index=row.row_index,
            status=RowStatus.COMPLETED.value,
            processed_rows=processed,
            total_rows=job.total_rows,
        )

    def _mark_row_error(self, job: JobRecord, row: RowRecord, message: str) -> None:
        try:
            self._write(
                "mark row error",
                self._store.update_row,
                job.job_id,
                row.row_index,
                status=RowStatus.ERROR.value,
                error_message=message,
            )
            processed = self._write("count processed rows", self._store.refresh_processed_rows, job.job_id)
        except PersistenceError:
            logger.exception("Could not record failure of row %d in job %s", row.row_index, job.job_id)
            return
        self._notifier.emit(
            NotificationEvent.ROW_PROCESSED,
            job.job_id,
            row_index=row.row_index,
            status=RowStatus.ERROR.value,
            error=message,
            processed_rows=processed,
            total_rows=job.total_rows,
        )
        self._notifier.log(job.job_id, f"Row {row.row_index + 1} failed: {message}", level="error", row_index=row.row_index)

    def _complete_job(self, job_id: str) -> None:
        target = next_status(JobStatus.IN_PROGRESS, JobEvent.COMPLETE)
        updated = self._write(
            "complete job",
            self._store.update_job,
            job_id,
            expected_statuses=[status.value for status in allowed_sources(JobEvent.COMPLETE)],
            status=target.value,
        )
        if updated:
            job = self._store.get_job(job_id)
            self._notifier.emit(
                NotificationEvent.JOB_COMPLETED,
                job_id,
                processed_rows=job.processed_rows if job else None,
                total_rows=job.total_rows if job else None,
            )

    def fail_job(self, job_id: str, message: str) -> None:
        self._fail_job(job_id, message)

    def _fail_job(self, job_id: str, message: str) -> None:
        target = next_status(JobStatus.IN_PROGRESS, JobEvent.FAIL)
        try:
            updated = self._write(
                "fail job",
                self._store.update_job,
                job_id,
                expected_statuses=[status.value for status in allowed_sources(JobEvent.FAIL)],
                status=target.value,
                error_message=message,
            )
        except PersistenceError:
            logger.exception("Could not record failure of job %s", job_id)
            return
        if updated:
            logger.error("Job %s failed: %s", job_id, message)
            self._notifier.emit(NotificationEvent.JOB_ERROR, job_id, error=message)

    @contextmanager
    def _lease(self, job_id: str, stop_event: threading.Event) -> Iterator[bool]:
        if not self._acquire(job_id, stop_event):
            yield False
            return
        done = threading.Event()
        beat = threading.Thread(
            target=self._heartbeat,
            args=(job_id, done, stop_event),
            name=f"lease-{job_id}",
            daemon=True,
        )
        beat.start()
        try:
            yield True
        finally:
            done.set()
            beat.join()
            try:
                self._write("release job", self._store.release_job, job_id, worker_id=self._worker_id)
            except PersistenceError:
                logger.exception("Could not release lease on job %s", job_id)

    def _acquire(self, job_id: str, stop_event: threading.Event) -> bool:
        # a worker of another process may still be finishing its in-flight stage
        deadline = time.monotonic() + self._lease_seconds
        while not self.claim(job_id):
            if self._current_status(job_id) != JobStatus.IN_PROGRESS.value:
                return False
            if time.monotonic() >= deadline or stop_event.wait(_CLAIM_POLL_SECONDS):
                return False
        return True

    def _heartbeat(self, job_id: str, done: threading.Event, stop_event: threading.Event) -> None:
        while not done.wait(self._lease_seconds / 3):
            try:
                held = self._store.heartbeat_job(job_id, worker_id=self._worker_id)
            except sqlite3.Error:
                logger.warning("Lease heartbeat for job %s failed", job_id, exc_info=True)
                continue
            if not held:
                logger.warning("Lost lease on job %s; stopping at the next stage boundary", job_id)
                stop_event.set()
                return

    def _should_stop(self, job_id: str, stop_event: threading.Event) -> bool:
        if stop_event.is_set():
            return True
        return self._current_status(job_id) != JobStatus.IN_PROGRESS.value

    def _current_status(self, job_id: str) -> str:
        job = self._store.get_job(job_id)
        return job.status if job is not None else JobStatus.ERROR.value

    @staticmethod
    def _write(operation: str, func, *args: Any, **kwargs: Any):
        return with_persistence_retry(operation, func, *args, **kwargs)


__all__ = ["JobRunner"]
