from __future__ import annotations

from pathlib import Path

import pytest

from persistence.sqlite_store import SqliteStore
from services.references import ReferenceLibrary, normalize_url, reference_text


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("https://Docs.Example.com/Security/", "https://docs.example.com/Security"),
        ("docs.example.com/a?b=2&a=1#frag", "https://docs.example.com/a?a=1&b=2"),
        ("  HTTP://example.com/  ", "http://example.com/"),
    ],
)
def test_normalize_url(raw: str, expected: str) -> None:
    assert normalize_url(raw) == expected


def test_reference_text_joins_summary_and_quotes() -> None:
    reference = {"summary": " Encryption overview ", "quotes": ["AES-256 at rest.", "  ", "TLS 1.2+"]}
    assert reference_text(reference) == "Encryption overview\n\nAES-256 at rest.\n\nTLS 1.2+"
    assert reference_text({}) == ""


def test_library_stores_each_source_once(tmp_path: Path) -> None:
    library = ReferenceLibrary(SqliteStore(tmp_path / "metadata.sqlite"))
    references = [
        {"url": "https://docs.example.com/security/", "summary": "Security overview", "quotes": ["AES-256"]},
        {"url": "https://DOCS.example.com/security", "summary": "Duplicate with other text"},
        {"url": "", "summary": "No URL"},
    ]

    stored = library.add_references(references)

    assert stored == 1
    sources = library.sources()
    assert [source["source_id"] for source in sources] == ["https://docs.example.com/security"]
    chunks = library.chunks("https://docs.example.com/security")
    assert chunks[0].text == "Security overview\n\nAES-256"


def test_library_documents_are_keyed_by_content_hash(tmp_path: Path) -> None:
    library = ReferenceLibrary(SqliteStore(tmp_path / "metadata.sqlite"))

    first = library.add_document("profile.md", "We were founded in 2001.")
    second = library.add_document("copy.md", "We were founded in 2001.")

    assert first == second
    assert first.startswith("document:")
    assert len(library.chunks(first)) == 1
    assert library.remove(first) == 1
    assert library.sources() == []
