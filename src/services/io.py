"""Service-layer helpers for questionnaire input and result export."""

from __future__ import annotations

import csv
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterable, Iterator, Mapping, Sequence

from openpyxl import Workbook, load_workbook

from persistence.models import RowRecord
from utils.text import normalize_block, truncate

QUESTION_FIELD_NAMES = (
    "QUESTION TITLE",
    "Question",
    "question",
    "QUESTION",
    "Question Title",
    "RFP Question",
    "Query",
)
TEXT_DOCUMENT_SUFFIXES = {".txt", ".md"}
SUPPORTING_DOCUMENT_LIMIT = 5000
_MIN_FALLBACK_QUESTION_CHARS = 10

_EXPORT_COLUMNS = [
    "row",
    "question",
    "resolved_question",
    "status",
    "response",
    "error",
]


def extract_question_text(record: Mapping[str, Any]) -> str | None:
    """Pick the question cell from a spreadsheet row.

    Known header names win; otherwise the first string cell longer than ten
    characters is taken as the question.
    """
    for name in QUESTION_FIELD_NAMES:
        value = record.get(name)
        if isinstance(value, str) and value.strip():
            return value.strip()
    for value in record.values():
        if isinstance(value, str) and len(value.strip()) > _MIN_FALLBACK_QUESTION_CHARS:
            return value.strip()
    return None


def load_spreadsheet_rows(path: str | Path) -> list[dict[str, Any]]:
    source = Path(path)
    suffix = source.suffix.lower()
    if suffix == ".csv":
        with source.open("r", encoding="utf-8-sig", newline="") as handle:
            return [dict(row) for row in csv.DictReader(handle)]
    if suffix in {".xlsx", ".xlsm"}:
        return _load_xlsx_rows(source)
    raise ValueError(f"Unsupported spreadsheet type: {source.suffix or source.name}")


def load_questions(path: str | Path) -> list[str]:
    questions: list[str] = []
    for record in load_spreadsheet_rows(path):
        question = extract_question_text(record)
        if question:
            questions.append(question)
    return questions


def load_supporting_document(path: str | Path) -> tuple[str, str]:
    """Return ``(file_name, content)`` with content capped for prompt use."""
    source = Path(path)
    if source.suffix.lower() in TEXT_DOCUMENT_SUFFIXES:
        content = normalize_block(source.read_text(encoding="utf-8", errors="replace"))
    else:
        content = f"[Document: {source.name} - Content parsing not implemented for this file type]"
    return source.name, truncate(content, SUPPORTING_DOCUMENT_LIMIT)


@contextmanager
def temp_upload(data: bytes, *, filename: str | None = None, default_suffix: str = ".csv") -> Iterator[Path]:
    """Write uploaded bytes to a temporary file and yield its path."""
    suffix = default_suffix
    if filename and "." in filename:
        suffix = Path(filename).suffix or suffix
    with tempfile.NamedTemporaryFile(delete=False, suffix=suffix) as handle:
        handle.write(data)
        handle.flush()
        path = Path(handle.name)
    try:
        yield path
    finally:
        try:
            path.unlink()
        except FileNotFoundError:
            pass


def decode_supporting_document(file_name: str, data: bytes) -> tuple[str, str]:
    """Same rules as :func:`load_supporting_document` for in-memory uploads."""
    if Path(file_name).suffix.lower() in TEXT_DOCUMENT_SUFFIXES:
        content = normalize_block(data.decode("utf-8", errors="replace"))
    else:
        content = f"[Document: {file_name} - Content parsing not implemented for this file type]"
    return file_name, truncate(content, SUPPORTING_DOCUMENT_LIMIT)


def format_supporting_documents(documents: Sequence[tuple[str, str]]) -> str:
    if not documents:
        return "No additional documents provided."
    return "\n\n".join(
        f"**Document {index}: {file_name}**\n{content}"
        for index, (file_name, content) in enumerate(documents, start=1)
    )


def export_rows(rows: Iterable[RowRecord], path: str | Path) -> Path:
    """Write row results to ``.csv`` or ``.xlsx`` depending on the suffix."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    records = [_export_record(row) for row in rows]
    suffix = target.suffix.lower()
    if suffix == ".csv":
        with target.open("w", encoding="utf-8", newline="") as handle:
            writer = csv.DictWriter(handle, fieldnames=_EXPORT_COLUMNS)
            writer.writeheader()
            writer.writerows(records)
        return target
    if suffix == ".xlsx":
        workbook = Workbook()
        sheet = workbook.active
        sheet.title = "Responses"
        sheet.append(_EXPORT_COLUMNS)
        for record in records:
            sheet.append([record[column] for column in _EXPORT_COLUMNS])
        workbook.save(target)
        return target
    raise ValueError(f"Unsupported export type: {target.suffix or target.name}")


def _load_xlsx_rows(path: Path) -> list[dict[str, Any]]:
    workbook = load_workbook(path, read_only=True, data_only=True)
    try:
        sheet = workbook.active
        rows = sheet.iter_rows(values_only=True)
        header = next(rows, None)
        if header is None:
            return []
        names = [str(cell).strip() if cell is not None else f"column_{idx}" for idx, cell in enumerate(header)]
        records: list[dict[str, Any]] = []
        for values in rows:
            if values is None or all(value is None for value in values):
                continue
            records.append({name: value for name, value in zip(names, values)})
        return records
    finally:
        workbook.close()


def _export_record(row: RowRecord) -> dict[str, Any]:
    return {
        "row": row.row_index + 1,
        "question": row.question,
        "resolved_question": row.resolved_question or "",
        "status": row.status,
        "response": row.output or "",
        "error": row.error_message or "",
    }


__all__ = [
    "QUESTION_FIELD_NAMES",
    "SUPPORTING_DOCUMENT_LIMIT",
    "decode_supporting_document",
    "export_rows",
    "extract_question_text",
    "format_supporting_documents",
    "load_questions",
    "load_spreadsheet_rows",
    "load_supporting_document",
    "temp_upload",
]
