from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from core.errors import PersistenceError
from persistence.sqlite_store import SqliteStore
from services.journal import StepJournal, with_persistence_retry


def _begin(journal: StepJournal, job_id: str, stage_index: int):
    return journal.begin(
        job_id=job_id,
        row_index=0,
        stage_index=stage_index,
        stage_name=f"stage {stage_index}",
        input_text="question",
        prompt="prompt",
        model="gpt-4o",
    )


def test_persistence_retry_recovers_after_one_failure() -> None:
    attempts: list[int] = []
    sleeps: list[float] = []

    def flaky() -> str:
        attempts.append(1)
        if len(attempts) == 1:
            raise sqlite3.OperationalError("database is locked")
        return "ok"

    assert with_persistence_retry("write", flaky, sleep=sleeps.append) == "ok"
    assert len(attempts) == 2
    assert sleeps == [0.05]


def test_persistence_retry_surfaces_second_failure() -> None:
    def broken() -> None:
        raise sqlite3.OperationalError("disk I/O error")

    with pytest.raises(PersistenceError, match="write failed: disk I/O error"):
        with_persistence_retry("write", broken, sleep=lambda _: None)


def test_journal_records_step_lifecycle(tmp_path: Path) -> None:
    store = SqliteStore(tmp_path / "metadata.sqlite")
    job = store.create_job(name="job", questions=["Q?"])
    journal = StepJournal(store)

    research = _begin(journal, job.job_id, 0)
    completed = journal.complete(research, output="refs", latency_ms=12, cache_hit=True, metadata={"k": 1})
    draft = _begin(journal, job.job_id, 1)
    journal.fail(draft, error="boom", latency_ms=3)
    _begin(journal, job.job_id, 2)

    assert completed.status == "completed"
    done = journal.completed_steps(job.job_id, 0)
    assert list(done) == [0]
    assert done[0].output == "refs"
    assert done[0].cache_hit is True
    assert done[0].metadata == {"k": 1}

    assert journal.discard_incomplete(job.job_id, 0) == 2
    assert [step.stage_index for step in store.list_steps(job.job_id)] == [0]
