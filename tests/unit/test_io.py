from __future__ import annotations

import csv
from datetime import datetime, timezone
from pathlib import Path

import pytest
from openpyxl import Workbook, load_workbook

from persistence.models import RowRecord
from services.io import (
    SUPPORTING_DOCUMENT_LIMIT,
    decode_supporting_document,
    export_rows,
    extract_question_text,
    format_supporting_documents,
    load_questions,
    load_supporting_document,
    temp_upload,
)


def _row(index: int, *, output: str | None = None, status: str = "completed") -> RowRecord:
    return RowRecord(
        job_id="job_1",
        row_index=index,
        question=f"Question {index + 1}?",
        status=status,
        resolved_question=None,
        has_references=False,
        referenced_rows=(),
        resolution_reasoning=None,
        output=output,
        error_message=None if status != "error" else "boom",
        updated_at=datetime.now(timezone.utc),
    )


def test_extract_question_text_prefers_known_headers() -> None:
    assert extract_question_text({"ID": "1", "Question": " Do you support SSO? "}) == "Do you support SSO?"
    assert extract_question_text({"ID": "1", "Notes": "A long free-text question here?"}) == (
        "A long free-text question here?"
    )
    assert extract_question_text({"ID": "1", "Notes": "short"}) is None


def test_load_questions_from_csv(tmp_path: Path) -> None:
    path = tmp_path / "rfp.csv"
    path.write_text(
        "ID,QUESTION TITLE\n1,Describe your backup policy.\n2,\n3,Where is data hosted?\n",
        encoding="utf-8-sig",
    )

    assert load_questions(path) == ["Describe your backup policy.", "Where is data hosted?"]


def test_load_questions_from_xlsx(tmp_path: Path) -> None:
    path = tmp_path / "rfp.xlsx"
    workbook = Workbook()
    sheet = workbook.active
    sheet.append(["Ref", "RFP Question"])
    sheet.append([1, "Describe your SLA commitments."])
    sheet.append([None, None])
    sheet.append([2, "List your certifications."])
    workbook.save(path)

    assert load_questions(path) == ["Describe your SLA commitments.", "List your certifications."]


def test_unsupported_spreadsheet_type(tmp_path: Path) -> None:
    path = tmp_path / "rfp.pdf"
    path.write_bytes(b"%PDF")
    with pytest.raises(ValueError, match="Unsupported spreadsheet type"):
        load_questions(path)


def test_supporting_documents(tmp_path: Path) -> None:
    text_doc = tmp_path / "profile.md"
    text_doc.write_text("Company profile  \r\n\r\nFounded 2001.\n", encoding="utf-8")
    binary_doc = tmp_path / "deck.pptx"
    binary_doc.write_bytes(b"\x00\x01")

    assert load_supporting_document(text_doc) == ("profile.md", "Company profile\n\nFounded 2001.")
    name, content = load_supporting_document(binary_doc)
    assert name == "deck.pptx"
    assert "Content parsing not implemented" in content

    _, long_content = decode_supporting_document("big.txt", b"x" * (SUPPORTING_DOCUMENT_LIMIT + 10))
    assert len(long_content) == SUPPORTING_DOCUMENT_LIMIT


def test_format_supporting_documents() -> None:
    assert format_supporting_documents([]) == "No additional documents provided."
    assert format_supporting_documents([("a.md", "alpha"), ("b.txt", "beta")]) == (
        "**Document 1: a.md**\nalpha\n\n**Document 2: b.txt**\nbeta"
    )


def test_temp_upload_removes_file(tmp_path: Path) -> None:
    with temp_upload(b"Question\nWhat?\n", filename="upload.xlsx") as path:
        assert path.suffix == ".xlsx"
        assert path.read_bytes() == b"Question\nWhat?\n"
    assert not path.exists()


def test_export_rows_csv(tmp_path: Path) -> None:
    target = export_rows([_row(0, output="Answer one"), _row(1, status="error")], tmp_path / "out" / "r.csv")

    with target.open(encoding="utf-8", newline="") as handle:
        records = list(csv.DictReader(handle))
    assert [record["row"] for record in records] == ["1", "2"]
    assert records[0]["response"] == "Answer one"
    assert records[1]["status"] == "error"
    assert records[1]["error"] == "boom"


def test_export_rows_xlsx(tmp_path: Path) -> None:
    target = export_rows([_row(0, output="Answer one")], tmp_path / "r.xlsx")

    workbook = load_workbook(target)
    sheet = workbook.active
    values = list(sheet.iter_rows(values_only=True))
    assert sheet.title == "Responses"
    assert values[0] == ("row", "question", "resolved_question", "status", "response", "error")
    assert values[1][0] == 1
    assert values[1][4] == "Answer one"


def test_export_rows_rejects_unknown_suffix(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        export_rows([], tmp_path / "r.json")
