"""SQLite-backed store for jobs, rows, steps, cache index and reference chunks."""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Iterable, Sequence
from uuid import uuid4

from persistence.models import (
    CacheEntry,
    JobDocumentRecord,
    JobRecord,
    ReferenceChunk,
    RowRecord,
    StepRecord,
)


_SCHEMA = """
PRAGMA journal_mode=WAL;
PRAGMA foreign_keys=ON;

CREATE TABLE IF NOT EXISTS jobs (
    job_id TEXT PRIMARY KEY,
    owner TEXT,
    name TEXT NOT NULL,
    status TEXT NOT NULL,
    total_rows INTEGER NOT NULL,
    processed_rows INTEGER NOT NULL DEFAULT 0,
    priority INTEGER NOT NULL DEFAULT 0,
    failure_policy TEXT NOT NULL,
    instructions TEXT,
    error_message TEXT,
    worker_id TEXT,
    heartbeat_at TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_jobs_status ON jobs(status);

CREATE TABLE IF NOT EXISTS job_rows (
    job_id TEXT NOT NULL,
    row_index INTEGER NOT NULL,
    question TEXT NOT NULL,
    status TEXT NOT NULL,
    resolved_question TEXT,
    has_references INTEGER NOT NULL DEFAULT 0,
    referenced_rows_json TEXT,
    resolution_reasoning TEXT,
    output TEXT,
    error_message TEXT,
    updated_at TEXT NOT NULL,
    PRIMARY KEY(job_id, row_index),
    FOREIGN KEY(job_id) REFERENCES jobs(job_id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS job_steps (
    step_id TEXT PRIMARY KEY,
    job_id TEXT NOT NULL,
    row_index INTEGER NOT NULL,
    stage_index INTEGER NOT NULL,
    stage_name TEXT NOT NULL,
    status TEXT NOT NULL,
    input TEXT,
    output TEXT,
    prompt TEXT,
    model TEXT,
    latency_ms INTEGER,
    cache_hit INTEGER NOT NULL DEFAULT 0,
    error_message TEXT,
    metadata_json TEXT,
    created_at TEXT NOT NULL,
    completed_at TEXT,
    FOREIGN KEY(job_id) REFERENCES jobs(job_id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_job_steps_row ON job_steps(job_id, row_index);

CREATE TABLE IF NOT EXISTS job_documents (
    document_id TEXT PRIMARY KEY,
    job_id TEXT NOT NULL,
    file_name TEXT NOT NULL,
    content TEXT NOT NULL,
    created_at TEXT NOT NULL,
    FOREIGN KEY(job_id) REFERENCES jobs(job_id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_job_documents_job_id ON job_documents(job_id);

CREATE TABLE IF NOT EXISTS cache_entries (
    cache_key TEXT NOT NULL,
    stage TEXT NOT NULL,
    content_hash TEXT NOT NULL,
    path TEXT NOT NULL,
    model TEXT,
    created_at TEXT NOT NULL,
    last_accessed TEXT,
    PRIMARY KEY(stage, cache_key)
);
CREATE INDEX IF NOT EXISTS idx_cache_entries_stage ON cache_entries(stage);

CREATE TABLE IF NOT EXISTS reference_chunks (
    source_id TEXT NOT NULL,
    chunk_index INTEGER NOT NULL,
    text TEXT NOT NULL,
    token_count INTEGER NOT NULL,
    start_offset INTEGER NOT NULL,
    end_offset INTEGER NOT NULL,
    overlap_chars INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    PRIMARY KEY(source_id, chunk_index)
);
"""

_JOB_COLUMNS = {
    "status",
    "processed_rows",
    "priority",
    "failure_policy",
    "instructions",
    "error_message",
    "name",
    "owner",
}
_ROW_COLUMNS = {
    "status",
    "resolved_question",
    "has_references",
    "referenced_rows",
    "resolution_reasoning",
    "output",
    "error_message",
}
_STEP_COLUMNS = {
    "status",
    "output",
    "prompt",
    "model",
    "latency_ms",
    "cache_hit",
    "error_message",
    "metadata",
    "completed_at",
}
_TERMINAL_ROW_STATUSES = ("completed", "error")


class SqliteStore:
    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._initialize()

    @property
    def path(self) -> Path:
        return self._path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._path, timeout=30)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    def _initialize(self) -> None:
        with self._connect() as conn:
            conn.executescript(_SCHEMA)
            columns = {row["name"] for row in conn.execute("PRAGMA table_info(jobs)")}
            for column in ("worker_id", "heartbeat_at"):
                if column not in columns:
                    conn.execute(f"ALTER TABLE jobs ADD COLUMN {column} TEXT")
            conn.commit()

    # ------------------------------------------------------------------
    # jobs
    # ------------------------------------------------------------------
    def create_job(
        self,
        *,
        name: str,
        questions: Sequence[str],
        owner: str | None = None,
        priority: int = 0,
        failure_policy: str = "continue",
        instructions: str | None = None,
    ) -> JobRecord:
        job_id = _new_id("job")
        now = _now_iso()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO jobs (
                    job_id, owner, name, status, total_rows, processed_rows, priority,
                    failure_policy, instructions, error_message, created_at, updated_at
                ) VALUES (?, ?, ?, 'not_started', ?, 0, ?, ?, ?, NULL, ?, ?)
                """,
                (
                    job_id,
                    owner,
                    name,
                    len(questions),
                    priority,
                    failure_policy,
                    instructions,
                    now,
                    now,
                ),
            )
            conn.executemany(
                """
                INSERT INTO job_rows (job_id, row_index, question, status, updated_at)
                VALUES (?, ?, ?, 'pending', ?)
                """,
                [(job_id, index, question, now) for index, question in enumerate(questions)],
            )
            conn.commit()
        job = self.get_job(job_id)
        assert job is not None
        return job

    def get_job(self, job_id: str) -> JobRecord | None:
        row = self._fetch_one("SELECT * FROM jobs WHERE job_id = ?", (job_id,))
        return _row_to_job(row) if row else None

    def list_jobs(
        self,
        *,
        owner: str | None = None,
        statuses: Iterable[str] | None = None,
    ) -> list[JobRecord]:
        clauses: list[str] = []
        params: list[object] = []
        if owner is not None:
            clauses.append("owner = ?")
            params.append(owner)
        status_list = list(statuses or [])
        if status_list:
            clauses.append(f"status IN ({', '.join('?' for _ in status_list)})")
            params.extend(status_list)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = self._fetch_all(
            f"SELECT * FROM jobs {where} ORDER BY priority DESC, created_at ASC, rowid ASC",
            tuple(params),
        )
        return [_row_to_job(row) for row in rows]

    def update_job(
        self,
        job_id: str,
        *,
        expected_statuses: Iterable[str] | None = None,
        **fields: object,
    ) -> bool:
        """Update job columns; returns False when the status guard did not match."""
        unknown = set(fields) - _JOB_COLUMNS
        if unknown:
            raise ValueError(f"Unknown job fields: {', '.join(sorted(unknown))}")
        columns = [f"{key} = ?" for key in fields]
        values: list[object] = list(fields.values())
        columns.append("updated_at = ?")
        values.append(_now_iso())
        query = f"UPDATE jobs SET {', '.join(columns)} WHERE job_id = ?"
        values.append(job_id)
        expected = list(expected_statuses or [])
        if expected:
            query += f" AND status IN ({', '.join('?' for _ in expected)})"
            values.extend(expected)
        with self._connect() as conn:
            cur = conn.execute(query, values)
            conn.commit()
            return cur.rowcount > 0

    def refresh_processed_rows(self, job_id: str) -> int:
        """Recount terminal rows into jobs.processed_rows and return the count."""
        with self._connect() as conn:
            count = conn.execute(
                "SELECT COUNT(*) FROM job_rows WHERE job_id = ? AND status IN (?, ?)",
                (job_id, *_TERMINAL_ROW_STATUSES),
            ).fetchone()[0]
            conn.execute(
                "UPDATE jobs SET processed_rows = ?, updated_at = ? WHERE job_id = ?",
                (count, _now_iso(), job_id),
            )
            conn.commit()
        return int(count)

    # ------------------------------------------------------------------
    # worker leases
    # ------------------------------------------------------------------
    def claim_job(self, job_id: str, *, worker_id: str, lease_seconds: float) -> bool:
        """Take the in_progress job's lease unless another worker holds a fresh one."""
        now = datetime.now(timezone.utc)
        stale_before = (now - timedelta(seconds=lease_seconds)).isoformat()
        with self._connect() as conn:
            cur = conn.execute(
                """
                UPDATE jobs SET worker_id = ?, heartbeat_at = ?
                 WHERE job_id = ? AND status = 'in_progress'
                   AND (worker_id IS NULL OR worker_id = ? OR heartbeat_at IS NULL OR heartbeat_at < ?)
                """,
                (worker_id, now.isoformat(), job_id, worker_id, stale_before),
            )
            conn.commit()
            return cur.rowcount > 0

    def heartbeat_job(self, job_id: str, *, worker_id: str) -> bool:
        """Refresh the lease; False means the lease now belongs to someone else."""
        with self._connect() as conn:
            cur = conn.execute(
                "UPDATE jobs SET heartbeat_at = ? WHERE job_id = ? AND worker_id = ?",
                (_now_iso(), job_id, worker_id),
            )
            conn.commit()
            return cur.rowcount > 0

    def release_job(self, job_id: str, *, worker_id: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE jobs SET worker_id = NULL, heartbeat_at = NULL WHERE job_id = ? AND worker_id = ?",
                (job_id, worker_id),
            )
            conn.commit()

    # ------------------------------------------------------------------
    # rows
    # ------------------------------------------------------------------
    def list_rows(self, job_id: str) -> list[RowRecord]:
        rows = self._fetch_all(
            "SELECT * FROM job_rows WHERE job_id = ? ORDER BY row_index ASC",
            (job_id,),
        )
        return [_row_to_row(row) for row in rows]

    def get_row(self, job_id: str, row_index: int) -> RowRecord | None:
        row = self._fetch_one(
            "SELECT * FROM job_rows WHERE job_id = ? AND row_index = ?",
            (job_id, row_index),
        )
        return _row_to_row(row) if row else None

    def update_row(self, job_id: str, row_index: int, **fields: object) -> None:
        unknown = set(fields) - _ROW_COLUMNS
        if unknown:
            raise ValueError(f"Unknown row fields: {', '.join(sorted(unknown))}")
        columns: list[str] = []
        values: list[object] = []
        for key, value in fields.items():
            if key == "referenced_rows":
                columns.append("referenced_rows_json = ?")
                values.append(json.dumps(list(value or [])))  # type: ignore[call-overload]
            elif key == "has_references":
                columns.append("has_references = ?")
                values.append(1 if value else 0)
            else:
                columns.append(f"{key} = ?")
                values.append(value)
        columns.append("updated_at = ?")
        values.append(_now_iso())
        values.extend([job_id, row_index])
        with self._connect() as conn:
            conn.execute(
                f"UPDATE job_rows SET {', '.join(columns)} WHERE job_id = ? AND row_index = ?",
                values,
            )
            conn.commit()

    def reset_rows(self, job_id: str) -> None:
        """Clear row progress and every step record while keeping the input rows."""
        now = _now_iso()
        with self._connect() as conn:
            conn.execute(
                """
                UPDATE job_rows
                   SET status = 'pending', resolved_question = NULL, has_references = 0,
                       referenced_rows_json = NULL, resolution_reasoning = NULL,
                       output = NULL, error_message = NULL, updated_at = ?
                 WHERE job_id = ?
                """,
                (now, job_id),
            )
            conn.execute("DELETE FROM job_steps WHERE job_id = ?", (job_id,))
            conn.execute(
                """
                UPDATE jobs SET processed_rows = 0, error_message = NULL, updated_at = ?
                 WHERE job_id = ?
                """,
                (now, job_id),
            )
            conn.commit()

    # ------------------------------------------------------------------
    # steps
    # ------------------------------------------------------------------
    def insert_step(self, record: StepRecord) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO job_steps (
                    step_id, job_id, row_index, stage_index, stage_name, status, input,
                    output, prompt, model, latency_ms, cache_hit, error_message,
                    metadata_json, created_at, completed_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.step_id,
                    record.job_id,
                    record.row_index,
                    record.stage_index,
                    record.stage_name,
                    record.status,
                    record.input,
                    record.output,
                    record.prompt,
                    record.model,
                    record.latency_ms,
                    1 if record.cache_hit else 0,
                    record.error_message,
                    _dump_json(record.metadata),
                    record.created_at.isoformat(),
                    record.completed_at.isoformat() if record.completed_at else None,
                ),
            )
            conn.commit()

    def update_step(self, step_id: str, **fields: object) -> None:
        unknown = set(fields) - _STEP_COLUMNS
        if unknown:
            raise ValueError(f"Unknown step fields: {', '.join(sorted(unknown))}")
        if not fields:
            return
        columns: list[str] = []
        values: list[object] = []
        for key, value in fields.items():
            if key == "metadata":
                columns.append("metadata_json = ?")
                values.append(_dump_json(value))
            elif key == "cache_hit":
                columns.append("cache_hit = ?")
                values.append(1 if value else 0)
            elif isinstance(value, datetime):
                columns.append(f"{key} = ?")
                values.append(value.isoformat())
            else:
                columns.append(f"{key} = ?")
                values.append(value)
        values.append(step_id)
        with self._connect() as conn:
            conn.execute(
                f"UPDATE job_steps SET {', '.join(columns)} WHERE step_id = ?",
                values,
            )
            conn.commit()

    def list_steps(self, job_id: str, *, row_index: int | None = None) -> list[StepRecord]:
        if row_index is None:
            rows = self._fetch_all(
                """
                SELECT * FROM job_steps WHERE job_id = ?
                 ORDER BY row_index ASC, stage_index ASC, created_at ASC
                """,
                (job_id,),
            )
        else:
            rows = self._fetch_all(
                """
                SELECT * FROM job_steps WHERE job_id = ? AND row_index = ?
                 ORDER BY stage_index ASC, created_at ASC
                """,
                (job_id, row_index),
            )
        return [_row_to_step(row) for row in rows]

    def delete_steps(
        self,
        job_id: str,
        *,
        row_index: int | None = None,
        statuses: Iterable[str] | None = None,
    ) -> int:
        query = "DELETE FROM job_steps WHERE job_id = ?"
        params: list[object] = [job_id]
        if row_index is not None:
            query += " AND row_index = ?"
            params.append(row_index)
        status_list = list(statuses or [])
        if status_list:
            query += f" AND status IN ({', '.join('?' for _ in status_list)})"
            params.extend(status_list)
        with self._connect() as conn:
            cur = conn.execute(query, params)
            conn.commit()
            return cur.rowcount

    # ------------------------------------------------------------------
    # supporting documents
    # ------------------------------------------------------------------
    def add_document(self, *, job_id: str, file_name: str, content: str) -> JobDocumentRecord:
        document_id = _new_id("jdoc")
        created_at = _now_iso()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO job_documents (document_id, job_id, file_name, content, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (document_id, job_id, file_name, content, created_at),
            )
            conn.commit()
        return JobDocumentRecord(
            document_id=document_id,
            job_id=job_id,
            file_name=file_name,
            content=content,
            created_at=_from_iso(created_at),
        )

    def list_documents(self, job_id: str) -> list[JobDocumentRecord]:
        rows = self._fetch_all(
            "SELECT * FROM job_documents WHERE job_id = ? ORDER BY created_at ASC, rowid ASC",
            (job_id,),
        )
        return [
            JobDocumentRecord(
                document_id=row["document_id"],
                job_id=row["job_id"],
                file_name=row["file_name"],
                content=row["content"],
                created_at=_from_iso(row["created_at"]),
            )
            for row in rows
        ]

    # ------------------------------------------------------------------
    # cache index
    # ------------------------------------------------------------------
    def get_cache_entry(self, *, stage: str, cache_key: str) -> CacheEntry | None:
        row = self._fetch_one(
            "SELECT * FROM cache_entries WHERE stage = ? AND cache_key = ?",
            (stage, cache_key),
        )
        return _row_to_cache(row) if row else None

    def insert_cache_entry(self, entry: CacheEntry) -> bool:
        """Insert unless an entry already exists; returns True when written."""
        with self._connect() as conn:
            cur = conn.execute(
                """
                INSERT OR IGNORE INTO cache_entries (
                    cache_key, stage, content_hash, path, model, created_at, last_accessed
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry.cache_key,
                    entry.stage,
                    entry.content_hash,
                    entry.path,
                    entry.model,
                    entry.created_at.isoformat(),
                    entry.last_accessed.isoformat() if entry.last_accessed else None,
                ),
            )
            conn.commit()
            return cur.rowcount > 0

    def touch_cache_entry(self, *, stage: str, cache_key: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE cache_entries SET last_accessed = ? WHERE stage = ? AND cache_key = ?",
                (_now_iso(), stage, cache_key),
            )
            conn.commit()

    def delete_cache_entry(self, *, stage: str, cache_key: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "DELETE FROM cache_entries WHERE stage = ? AND cache_key = ?",
                (stage, cache_key),
            )
            conn.commit()

    def list_cache_entries(self, *, stage: str | None = None) -> list[CacheEntry]:
        if stage is None:
            rows = self._fetch_all("SELECT * FROM cache_entries ORDER BY created_at ASC")
        else:
            rows = self._fetch_all(
                "SELECT * FROM cache_entries WHERE stage = ? ORDER BY created_at ASC",
                (stage,),
            )
        return [_row_to_cache(row) for row in rows]

    def list_cache_stats(self) -> list[dict[str, Any]]:
        rows = self._fetch_all(
            """
            SELECT stage, COUNT(*) AS count FROM cache_entries
            GROUP BY stage
            ORDER BY stage
            """
        )
        return [dict(row) for row in rows]

    def list_cache_entries_older_than(self, cutoff: datetime) -> list[CacheEntry]:
        rows = self._fetch_all(
            "SELECT * FROM cache_entries WHERE created_at < ?",
            (cutoff.isoformat(),),
        )
        return [_row_to_cache(row) for row in rows]

    # ------------------------------------------------------------------
    # reference chunks
    # ------------------------------------------------------------------
    def put_reference_chunks(self, source_id: str, chunks: Sequence[ReferenceChunk]) -> bool:
        """Append a source's chunk batch once; later batches for the source are ignored."""
        created_at = _now_iso()
        with self._connect() as conn:
            conn.execute("BEGIN IMMEDIATE")
            existing = conn.execute(
                "SELECT 1 FROM reference_chunks WHERE source_id = ? LIMIT 1",
                (source_id,),
            ).fetchone()
            if existing:
                conn.rollback()
                return False
            conn.executemany(
                """
                INSERT INTO reference_chunks (
                    source_id, chunk_index, text, token_count, start_offset, end_offset,
                    overlap_chars, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        source_id,
                        chunk.chunk_index,
                        chunk.text,
                        chunk.token_count,
                        chunk.start,
                        chunk.end,
                        chunk.overlap_chars,
                        created_at,
                    )
                    for chunk in chunks
                ],
            )
            conn.commit()
        return True

    def list_reference_chunks(self, source_id: str) -> list[ReferenceChunk]:
        rows = self._fetch_all(
            "SELECT * FROM reference_chunks WHERE source_id = ? ORDER BY chunk_index ASC",
            (source_id,),
        )
        return [
            ReferenceChunk(
                source_id=row["source_id"],
                chunk_index=row["chunk_index"],
                text=row["text"],
                token_count=row["token_count"],
                start=row["start_offset"],
                end=row["end_offset"],
                overlap_chars=row["overlap_chars"],
            )
            for row in rows
        ]

    def list_reference_sources(self) -> list[dict[str, Any]]:
        rows = self._fetch_all(
            """
            SELECT source_id, COUNT(*) AS chunks, SUM(token_count) AS tokens
              FROM reference_chunks
             GROUP BY source_id
             ORDER BY source_id
            """
        )
        return [dict(row) for row in rows]

    def delete_reference_source(self, source_id: str) -> int:
        with self._connect() as conn:
            cur = conn.execute("DELETE FROM reference_chunks WHERE source_id = ?", (source_id,))
            conn.commit()
            return cur.rowcount

    def _fetch_one(self, query: str, params: tuple[object, ...] = ()) -> sqlite3.Row | None:
        with self._connect() as conn:
            cur = conn.execute(query, params)
            return cur.fetchone()

    def _fetch_all(self, query: str, params: tuple[object, ...] = ()) -> list[sqlite3.Row]:
        with self._connect() as conn:
            cur = conn.execute(query, params)
            return cur.fetchall()


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid4().hex}"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _from_iso(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _dump_json(value: object) -> str | None:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False, sort_keys=True)


def _row_to_job(row: sqlite3.Row) -> JobRecord:
    return JobRecord(
        job_id=row["job_id"],
        owner=row["owner"],
        name=row["name"],
        status=row["status"],
        total_rows=row["total_rows"],
        processed_rows=row["processed_rows"],
        priority=row["priority"],
        failure_policy=row["failure_policy"],
        instructions=row["instructions"],
        error_message=row["error_message"],
        created_at=_from_iso(row["created_at"]),
        updated_at=_from_iso(row["updated_at"]),
        worker_id=row["worker_id"],
        heartbeat_at=_from_iso(row["heartbeat_at"]) if row["heartbeat_at"] else None,
    )


def _row_to_row(row: sqlite3.Row) -> RowRecord:
    referenced = json.loads(row["referenced_rows_json"]) if row["referenced_rows_json"] else []
    return RowRecord(
        job_id=row["job_id"],
        row_index=row["row_index"],
        question=row["question"],
        status=row["status"],
        resolved_question=row["resolved_question"],
        has_references=bool(row["has_references"]),
        referenced_rows=tuple(int(value) for value in referenced),
        resolution_reasoning=row["resolution_reasoning"],
        output=row["output"],
        error_message=row["error_message"],
        updated_at=_from_iso(row["updated_at"]),
    )


def _row_to_step(row: sqlite3.Row) -> StepRecord:
    return StepRecord(
        step_id=row["step_id"],
        job_id=row["job_id"],
        row_index=row["row_index"],
        stage_index=row["stage_index"],
        stage_name=row["stage_name"],
        status=row["status"],
        input=row["input"],
        output=row["output"],
        prompt=row["prompt"],
        model=row["model"],
        latency_ms=row["latency_ms"],
        cache_hit=bool(row["cache_hit"]),
        error_message=row["error_message"],
        metadata=json.loads(row["metadata_json"]) if row["metadata_json"] else None,
        created_at=_from_iso(row["created_at"]),
        completed_at=_from_iso(row["completed_at"]) if row["completed_at"] else None,
    )


def _row_to_cache(row: sqlite3.Row) -> CacheEntry:
    return CacheEntry(
        cache_key=row["cache_key"],
        stage=row["stage"],
        content_hash=row["content_hash"],
        path=row["path"],
        model=row["model"],
        created_at=_from_iso(row["created_at"]),
        last_accessed=_from_iso(row["last_accessed"]) if row["last_accessed"] else None,
    )


__all__ = ["SqliteStore"]
