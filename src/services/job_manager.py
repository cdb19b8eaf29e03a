"""Job lifecycle control: create, start, pause, resume, reset, reprocess, cancel.

Every control operation validates the transition against the table in
``services.state_machine`` and writes the new status with a guarded update, so
a concurrent change (for example the worker completing the job while a pause
request arrives) is rejected instead of overwritten. Each running job owns one
worker thread; pause and cancel take effect at the next stage boundary.

``_lock`` serialises control operations and may be held while joining a
worker. ``_workers_lock`` only guards the worker table and is never held
across a join, so a finishing worker can always deregister itself.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Mapping, Sequence

from core.errors import InvalidTransitionError, JobNotFoundError
from persistence.models import JobDocumentRecord, JobRecord, RowRecord, StepRecord
from persistence.sqlite_store import SqliteStore
from services.io import SUPPORTING_DOCUMENT_LIMIT
from services.job_runner import JobRunner
from services.notifications import NotificationEvent, NotificationHub
from services.references import ReferenceLibrary
from services.state_machine import JobEvent, JobStatus, RowStatus, allowed_sources, next_status
from utils.text import truncate

logger = logging.getLogger(__name__)

_FAILURE_POLICIES = {"continue", "fail_fast"}


@dataclass
class _Worker:
    thread: threading.Thread
    stop_event: threading.Event


class JobManager:
    def __init__(
        self,
        *,
        store: SqliteStore,
        runner: JobRunner,
        notifier: NotificationHub,
        library: ReferenceLibrary | None = None,
        default_failure_policy: str = "continue",
    ) -> None:
        if default_failure_policy not in _FAILURE_POLICIES:
            raise ValueError(f"Unknown failure policy: {default_failure_policy}")
        self._store = store
        self._runner = runner
        self._notifier = notifier
        self._library = library
        self._default_failure_policy = default_failure_policy
        self._lock = threading.RLock()
        self._workers_lock = threading.Lock()
        self._workers: dict[str, _Worker] = {}

    @property
    def store(self) -> SqliteStore:
        return self._store

    # ------------------------------------------------------------------
    # queries
    # ------------------------------------------------------------------
    def create_job(
        self,
        *,
        name: str,
        questions: Sequence[str],
        owner: str | None = None,
        priority: int = 0,
        failure_policy: str | None = None,
        instructions: str | None = None,
        documents: Sequence[tuple[str, str]] = (),
    ) -> JobRecord:
        cleaned = [question.strip() for question in questions if question and question.strip()]
        if not cleaned:
            raise ValueError("A job needs at least one question")
        policy = failure_policy or self._default_failure_policy
        if policy not in _FAILURE_POLICIES:
            raise ValueError(f"Unknown failure policy: {policy}")
        job = self._store.create_job(
            name=name,
            questions=cleaned,
            owner=owner,
            priority=priority,
            failure_policy=policy,
            instructions=instructions,
        )
        for file_name, content in documents:
            self.add_document(job.job_id, file_name=file_name, content=content)
        logger.info("Created job %s (%s) with %d rows", job.job_id, name, len(cleaned))
        return job

    def add_document(self, job_id: str, *, file_name: str, content: str) -> JobDocumentRecord:
        self.get_job(job_id)
        record = self._store.add_document(
            job_id=job_id,
            file_name=file_name,
            content=truncate(content, SUPPORTING_DOCUMENT_LIMIT),
        )
        if self._library is not None:
            self._library.add_document(file_name, content)
        return record

    def get_job(self, job_id: str) -> JobRecord:
        job = self._store.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def list_jobs(self, *, owner: str | None = None) -> list[JobRecord]:
        return self._store.list_jobs(owner=owner)

    def list_rows(self, job_id: str) -> list[RowRecord]:
        self.get_job(job_id)
        return self._store.list_rows(job_id)

    def list_steps(self, job_id: str, *, row_index: int | None = None) -> list[StepRecord]:
        self.get_job(job_id)
        return self._store.list_steps(job_id, row_index=row_index)

    def is_running(self, job_id: str) -> bool:
        with self._workers_lock:
            worker = self._workers.get(job_id)
            return worker is not None and worker.thread.is_alive()

    # ------------------------------------------------------------------
    # control
    # ------------------------------------------------------------------
    def start(self, job_id: str) -> JobRecord:
        with self._lock:
            job = self._transition(job_id, JobEvent.START)
            self._notifier.emit(NotificationEvent.JOB_STARTED, job_id, total_rows=job.total_rows)
            self._launch(job_id)
            return job

    def pause(self, job_id: str) -> JobRecord:
        with self._lock:
            job = self._transition(job_id, JobEvent.PAUSE)
            self._signal_stop(job_id)
            self._notifier.emit(NotificationEvent.JOB_PAUSED, job_id, processed_rows=job.processed_rows)
            return job

    def resume(self, job_id: str) -> JobRecord:
        with self._lock:
            job = self._transition(job_id, JobEvent.RESUME)
            self._notifier.emit(
                NotificationEvent.JOB_STARTED,
                job_id,
                total_rows=job.total_rows,
                processed_rows=job.processed_rows,
                resumed=True,
            )
            self._launch(job_id)
            return job

    def cancel(self, job_id: str) -> JobRecord:
        with self._lock:
            job = self._transition(job_id, JobEvent.CANCEL)
            self._signal_stop(job_id)
            self._notifier.emit(NotificationEvent.JOB_CANCELLED, job_id)
            return job

    def reset(self, job_id: str) -> JobRecord:
        with self._lock:
            current = self.get_job(job_id)
            next_status(current.status, JobEvent.RESET)
            self._stop_and_join(job_id)
            self._store.reset_rows(job_id)
            job = self._transition(job_id, JobEvent.RESET, error_message=None)
            self._notifier.emit(NotificationEvent.JOB_RESET, job_id)
            return job

    def reprocess(self, job_id: str) -> JobRecord:
        with self._lock:
            current = self.get_job(job_id)
            next_status(current.status, JobEvent.REPROCESS)
            self._stop_and_join(job_id)
            self._store.reset_rows(job_id)
            job = self._transition(job_id, JobEvent.REPROCESS, error_message=None)
            self._notifier.emit(
                NotificationEvent.JOB_STARTED,
                job_id,
                total_rows=job.total_rows,
                reprocess=True,
            )
            self._launch(job_id)
            return job

    def reprocess_rows(self, job_id: str, feedback_by_row: Mapping[int, str]) -> JobRecord:
        """Regenerate the tailored response of selected rows from user feedback.

        ``feedback_by_row`` maps zero-based row indexes to feedback text. Only
        completed rows can be revised; other rows and their steps are untouched.
        """
        if not feedback_by_row:
            raise ValueError("Select at least one row to reprocess")
        with self._lock:
            current = self.get_job(job_id)
            next_status(current.status, JobEvent.REPROCESS)
            rows = {row.row_index: row for row in self._store.list_rows(job_id)}
            revisions: dict[int, str] = {}
            for row_index, feedback in feedback_by_row.items():
                row = rows.get(row_index)
                if row is None:
                    raise ValueError(f"Row {row_index + 1} does not exist in job {job_id}")
                if row.status != RowStatus.COMPLETED.value:
                    raise ValueError(f"Row {row_index + 1} has no completed response to revise")
                text = (feedback or "").strip()
                if not text:
                    raise ValueError(f"Row {row_index + 1} needs feedback text")
                revisions[row_index] = text
            self._stop_and_join(job_id)
            job = self._transition(job_id, JobEvent.REPROCESS, error_message=None)
            self._notifier.emit(
                NotificationEvent.JOB_STARTED,
                job_id,
                total_rows=job.total_rows,
                processed_rows=job.processed_rows,
                revised_rows=sorted(revisions),
            )
            self._launch(job_id, revisions=revisions)
            return job

    def wait(self, job_id: str, timeout: float | None = None) -> JobRecord:
        """Block until the job's worker thread exits (or ``timeout`` elapses)."""
        with self._workers_lock:
            worker = self._workers.get(job_id)
        if worker is not None:
            worker.thread.join(timeout)
        return self.get_job(job_id)

    def recover_interrupted(self, job_id: str | None = None) -> list[str]:
        """Relaunch in_progress jobs whose worker lease was released or went stale.

        Jobs still heartbeating from another process are left alone.
        """
        recovered: list[str] = []
        with self._lock:
            for job in self._store.list_jobs(statuses=[JobStatus.IN_PROGRESS.value]):
                if job_id is not None and job.job_id != job_id:
                    continue
                if self.is_running(job.job_id):
                    continue
                if not self._runner.claim(job.job_id):
                    logger.info("Job %s is owned by worker %s; not recovering", job.job_id, job.worker_id)
                    continue
                logger.info("Recovering interrupted job %s", job.job_id)
                self._notifier.log(job.job_id, "Resuming after restart")
                self._launch(job.job_id)
                recovered.append(job.job_id)
        return recovered

    def shutdown(self, timeout: float | None = None) -> None:
        """Stop workers at their next stage boundary; job statuses are left as-is."""
        with self._workers_lock:
            workers = list(self._workers.values())
        for worker in workers:
            worker.stop_event.set()
        for worker in workers:
            if worker.thread is not threading.current_thread():
                worker.thread.join(timeout)

    # ------------------------------------------------------------------
    # internals
    # ------------------------------------------------------------------
    def _transition(self, job_id: str, event: JobEvent, **fields: object) -> JobRecord:
        current = self.get_job(job_id)
        target = next_status(current.status, event)
        updated = self._store.update_job(
            job_id,
            expected_statuses=[status.value for status in allowed_sources(event)],
            status=target.value,
            **fields,
        )
        if not updated:
            latest = self.get_job(job_id)
            raise InvalidTransitionError(latest.status, event.value)
        logger.info("Job %s: %s -> %s (%s)", job_id, current.status, target.value, event.value)
        return self.get_job(job_id)

    def _launch(self, job_id: str, *, revisions: Mapping[int, str] | None = None) -> None:
        stop_event = threading.Event()
        with self._workers_lock:
            previous = self._workers.get(job_id)
            thread = threading.Thread(
                target=self._work,
                args=(job_id, stop_event, previous.thread if previous else None, revisions),
                name=f"job-{job_id}",
                daemon=True,
            )
            self._workers[job_id] = _Worker(thread=thread, stop_event=stop_event)
        thread.start()

    def _work(
        self,
        job_id: str,
        stop_event: threading.Event,
        previous: threading.Thread | None,
        revisions: Mapping[int, str] | None,
    ) -> None:
        # a paused worker may still be finishing its in-flight stage
        if previous is not None and previous is not threading.current_thread():
            previous.join()
        try:
            status = self._runner.run(job_id, stop_event, revisions=revisions)
            logger.info("Worker for job %s exited with status %s", job_id, status)
        except Exception as exc:
            logger.exception("Worker for job %s crashed", job_id)
            self._runner.fail_job(job_id, f"Worker crashed: {exc}")
        finally:
            with self._workers_lock:
                worker = self._workers.get(job_id)
                if worker is not None and worker.thread is threading.current_thread():
                    del self._workers[job_id]

    def _signal_stop(self, job_id: str) -> None:
        with self._workers_lock:
            worker = self._workers.get(job_id)
        if worker is not None:
            worker.stop_event.set()

    def _stop_and_join(self, job_id: str) -> None:
        with self._workers_lock:
            worker = self._workers.get(job_id)
        if worker is None or worker.thread is threading.current_thread():
            return
        worker.stop_event.set()
        worker.thread.join()


__all__ = ["JobManager"]
