"""Text normalization helpers."""

from __future__ import annotations


def normalize_block(text: str) -> str:
    """Normalize line endings and trailing whitespace, keeping line breaks."""

    cleaned = text.replace("\r\n", "\n").replace("\x0c", "\n")
    cleaned = "\n".join(line.rstrip() for line in cleaned.splitlines())
    return cleaned.strip()


def collapse_whitespace(text: str) -> str:
    """Collapse every whitespace run to one space; used for fingerprints."""

    return " ".join((text or "").split())


def truncate(text: str, limit: int) -> str:
    if limit <= 0 or len(text) <= limit:
        return text
    return text[:limit]


__all__ = ["collapse_whitespace", "normalize_block", "truncate"]
