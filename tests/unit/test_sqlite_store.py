import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from persistence.models import ReferenceChunk, StepRecord
from persistence.sqlite_store import SqliteStore


def _step(job_id: str, row_index: int, stage_index: int, status: str = "completed") -> StepRecord:
    return StepRecord(
        step_id=f"step_{row_index}_{stage_index}_{status}",
        job_id=job_id,
        row_index=row_index,
        stage_index=stage_index,
        stage_name=["context", "research", "draft", "tailor"][stage_index],
        status=status,
        input="in",
        output="out",
        prompt="prompt",
        model="gpt-4o",
        latency_ms=5,
        cache_hit=False,
        error_message=None,
        metadata={"usage": {"input_tokens": 1}},
        created_at=datetime.now(timezone.utc),
        completed_at=None,
    )


def test_sqlite_store_roundtrip(tmp_path: Path) -> None:
    store = SqliteStore(tmp_path / "metadata.sqlite")

    job = store.create_job(
        name="Security questionnaire",
        questions=["First?", "Second?"],
        owner="alice",
        priority=3,
        failure_policy="fail_fast",
        instructions="Be brief",
    )
    assert job.status == "not_started"
    assert job.total_rows == 2
    assert job.processed_rows == 0
    assert job.progress == 0

    rows = store.list_rows(job.job_id)
    assert [(row.row_index, row.question, row.status) for row in rows] == [
        (0, "First?", "pending"),
        (1, "Second?", "pending"),
    ]

    store.update_row(
        job.job_id,
        1,
        status="completed",
        resolved_question="Second, standalone?",
        has_references=True,
        referenced_rows=[1],
        output="Answer",
    )
    row = store.get_row(job.job_id, 1)
    assert row is not None
    assert row.has_references is True
    assert row.referenced_rows == (1,)
    assert row.output == "Answer"

    assert store.refresh_processed_rows(job.job_id) == 1
    refreshed = store.get_job(job.job_id)
    assert refreshed is not None
    assert refreshed.progress == 50


def test_update_job_guard_rejects_unexpected_status(tmp_path: Path) -> None:
    store = SqliteStore(tmp_path / "metadata.sqlite")
    job = store.create_job(name="job", questions=["Q?"])

    assert store.update_job(job.job_id, expected_statuses=["in_progress"], status="paused") is False
    assert store.update_job(job.job_id, expected_statuses=["not_started"], status="in_progress") is True
    current = store.get_job(job.job_id)
    assert current is not None
    assert current.status == "in_progress"


def test_list_jobs_orders_by_priority_then_creation(tmp_path: Path) -> None:
    store = SqliteStore(tmp_path / "metadata.sqlite")
    low = store.create_job(name="low", questions=["Q?"], priority=0, owner="a")
    high = store.create_job(name="high", questions=["Q?"], priority=5, owner="b")
    later_low = store.create_job(name="later", questions=["Q?"], priority=0, owner="a")

    assert [job.job_id for job in store.list_jobs()] == [high.job_id, low.job_id, later_low.job_id]
    assert [job.job_id for job in store.list_jobs(owner="a")] == [low.job_id, later_low.job_id]
    assert store.list_jobs(statuses=["completed"]) == []


def test_steps_and_reset(tmp_path: Path) -> None:
    store = SqliteStore(tmp_path / "metadata.sqlite")
    job = store.create_job(name="job", questions=["Q1?", "Q2?"])
    store.insert_step(_step(job.job_id, 1, 1))
    store.insert_step(_step(job.job_id, 0, 2))
    store.insert_step(_step(job.job_id, 0, 0))
    store.insert_step(_step(job.job_id, 1, 2, status="running"))

    steps = store.list_steps(job.job_id)
    assert [(step.row_index, step.stage_index) for step in steps] == [(0, 0), (0, 2), (1, 1), (1, 2)]
    assert steps[0].metadata == {"usage": {"input_tokens": 1}}

    store.update_step(steps[0].step_id, cache_hit=True, metadata={"cache_key": "k"})
    updated = store.list_steps(job.job_id, row_index=0)[0]
    assert updated.cache_hit is True
    assert updated.metadata == {"cache_key": "k"}

    assert store.delete_steps(job.job_id, row_index=1, statuses=["running"]) == 1

    store.update_row(job.job_id, 0, status="completed", output="A")
    store.refresh_processed_rows(job.job_id)
    store.reset_rows(job.job_id)

    assert store.list_steps(job.job_id) == []
    assert all(row.status == "pending" and row.output is None for row in store.list_rows(job.job_id))
    reset_job = store.get_job(job.job_id)
    assert reset_job is not None
    assert reset_job.processed_rows == 0


def test_documents_are_listed_in_upload_order(tmp_path: Path) -> None:
    store = SqliteStore(tmp_path / "metadata.sqlite")
    job = store.create_job(name="job", questions=["Q?"])
    store.add_document(job_id=job.job_id, file_name="a.md", content="alpha")
    store.add_document(job_id=job.job_id, file_name="b.txt", content="beta")

    assert [doc.file_name for doc in store.list_documents(job.job_id)] == ["a.md", "b.txt"]


def test_reference_chunks_are_appended_once_per_source(tmp_path: Path) -> None:
    store = SqliteStore(tmp_path / "metadata.sqlite")
    chunks = [
        ReferenceChunk(source_id="src", chunk_index=0, text="one", token_count=1, start=0, end=3),
        ReferenceChunk(source_id="src", chunk_index=1, text="two", token_count=1, start=5, end=8),
    ]

    assert store.put_reference_chunks("src", chunks) is True
    assert store.put_reference_chunks("src", chunks[:1]) is False
    assert store.list_reference_chunks("src") == chunks
    assert store.list_reference_sources() == [{"source_id": "src", "chunks": 2, "tokens": 2}]
    assert store.delete_reference_source("src") == 2
    assert store.list_reference_sources() == []


def test_worker_lease_claim_heartbeat_and_release(tmp_path: Path) -> None:
    store = SqliteStore(tmp_path / "metadata.sqlite")
    job = store.create_job(name="job", questions=["Q?"])

    assert store.claim_job(job.job_id, worker_id="a", lease_seconds=60) is False
    store.update_job(job.job_id, status="in_progress")

    assert store.claim_job(job.job_id, worker_id="a", lease_seconds=60) is True
    assert store.claim_job(job.job_id, worker_id="a", lease_seconds=60) is True
    assert store.claim_job(job.job_id, worker_id="b", lease_seconds=60) is False
    claimed = store.get_job(job.job_id)
    assert claimed is not None
    assert claimed.worker_id == "a"
    assert claimed.heartbeat_at is not None

    assert store.heartbeat_job(job.job_id, worker_id="a") is True
    assert store.heartbeat_job(job.job_id, worker_id="b") is False

    store.release_job(job.job_id, worker_id="b")
    assert store.get_job(job.job_id).worker_id == "a"
    store.release_job(job.job_id, worker_id="a")
    released = store.get_job(job.job_id)
    assert released.worker_id is None
    assert released.heartbeat_at is None
    assert store.claim_job(job.job_id, worker_id="b", lease_seconds=60) is True


def test_stale_worker_lease_can_be_taken_over(tmp_path: Path) -> None:
    store = SqliteStore(tmp_path / "metadata.sqlite")
    job = store.create_job(name="job", questions=["Q?"])
    store.update_job(job.job_id, status="in_progress")
    assert store.claim_job(job.job_id, worker_id="dead", lease_seconds=60) is True

    with sqlite3.connect(store.path) as conn:
        conn.execute(
            "UPDATE jobs SET heartbeat_at = ? WHERE job_id = ?",
            ("2000-01-01T00:00:00+00:00", job.job_id),
        )

    assert store.claim_job(job.job_id, worker_id="fresh", lease_seconds=60) is True
    assert store.heartbeat_job(job.job_id, worker_id="dead") is False
    assert store.get_job(job.job_id).worker_id == "fresh"


def test_lease_columns_are_added_to_older_databases(tmp_path: Path) -> None:
    path = tmp_path / "metadata.sqlite"
    with sqlite3.connect(path) as conn:
        conn.execute(
            """
            CREATE TABLE jobs (
                job_id TEXT PRIMARY KEY, owner TEXT, name TEXT NOT NULL, status TEXT NOT NULL,
                total_rows INTEGER NOT NULL, processed_rows INTEGER NOT NULL DEFAULT 0,
                priority INTEGER NOT NULL DEFAULT 0, failure_policy TEXT NOT NULL,
                instructions TEXT, error_message TEXT,
                created_at TEXT NOT NULL, updated_at TEXT NOT NULL
            )
            """
        )

    store = SqliteStore(path)
    job = store.create_job(name="job", questions=["Q?"])

    assert store.get_job(job.job_id).worker_id is None
