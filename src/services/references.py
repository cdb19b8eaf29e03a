"""Reference library: chunked source material keyed by normalized URL or document hash."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from persistence.hashing import sha256_text
from persistence.models import ReferenceChunk
from persistence.sqlite_store import SqliteStore
from services.chunker import ContentChunker

logger = logging.getLogger(__name__)


def normalize_url(url: str) -> str:
    """Canonical form used to de-duplicate references that differ only cosmetically."""
    cleaned = url.strip()
    if not cleaned.lower().startswith(("http://", "https://")):
        cleaned = f"https://{cleaned}"
    parts = urlsplit(cleaned)
    path = parts.path
    if path != "/" and path.endswith("/"):
        path = path.rstrip("/")
    query = urlencode(sorted(parse_qsl(parts.query, keep_blank_values=True)))
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, query, ""))


def reference_text(reference: Mapping[str, Any]) -> str:
    summary = str(reference.get("summary") or "").strip()
    quotes = [str(quote).strip() for quote in reference.get("quotes") or [] if str(quote).strip()]
    blocks = [summary] if summary else []
    blocks.extend(quotes)
    return "\n\n".join(blocks)


class ReferenceLibrary:
    def __init__(self, store: SqliteStore, chunker: ContentChunker | None = None) -> None:
        self._store = store
        self._chunker = chunker or ContentChunker()

    def add_source(self, source_id: str, content: str) -> list[ReferenceChunk]:
        """Chunk and store a source once; returns [] when it is already stored."""
        chunks = self._chunker.chunk(content, source_id)
        if not chunks:
            return []
        if not self._store.put_reference_chunks(source_id, chunks):
            logger.debug("Reference source %s already chunked", source_id)
            return []
        return chunks

    def add_references(self, references: Iterable[Mapping[str, Any]]) -> int:
        stored = 0
        for reference in references:
            url = str(reference.get("url") or "").strip()
            if not url:
                continue
            stored += len(self.add_source(normalize_url(url), reference_text(reference)))
        return stored

    def add_document(self, file_name: str, content: str) -> str:
        source_id = f"document:{sha256_text(content)}"
        chunks = self.add_source(source_id, content)
        if chunks:
            logger.info("Chunked %s into %d reference chunks", file_name, len(chunks))
        return source_id

    def chunks(self, source_id: str) -> list[ReferenceChunk]:
        return self._store.list_reference_chunks(source_id)

    def sources(self) -> list[dict[str, Any]]:
        return self._store.list_reference_sources()

    def remove(self, source_id: str) -> int:
        return self._store.delete_reference_source(source_id)


__all__ = ["ReferenceLibrary", "normalize_url", "reference_text"]
