"""Helpers for extracting JSON payloads from generated text."""

from __future__ import annotations

import json
import re
from typing import Any, Iterator

_CODE_BLOCK_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)
_CLOSERS = {"{": "}", "[": "]"}


def extract_json_object(text: str, *, prefer_code_block: bool = True) -> str:
    """Extract the first JSON object string from text."""

    return _extract(text, openers="{", prefer_code_block=prefer_code_block, kind=dict)


def extract_json_value(text: str, *, prefer_code_block: bool = True) -> Any:
    """Return the first JSON object or array found in text, already decoded.

    Code fences are scanned first when ``prefer_code_block`` is set; models often
    wrap structured answers in prose, so the whole text is scanned as fallback.
    """

    candidate = _extract(text, openers="{[", prefer_code_block=prefer_code_block, kind=None)
    return json.loads(candidate)


def _extract(
    text: str,
    *,
    openers: str,
    prefer_code_block: bool,
    kind: type | None,
) -> str:
    source = text or ""
    if prefer_code_block:
        for block in _iter_code_blocks(source):
            candidate = _extract_first(block, openers, kind)
            if candidate is not None:
                return candidate

    candidate = _extract_first(source, openers, kind)
    if candidate is not None:
        return candidate

    raise ValueError("No JSON payload found in generated text")


def _iter_code_blocks(text: str) -> Iterator[str]:
    for match in _CODE_BLOCK_RE.finditer(text):
        yield match.group(1)


def _extract_first(text: str, openers: str, kind: type | None) -> str | None:
    for start in _iter_openers(text, openers):
        end = _find_matching_close(text, start)
        if end is None:
            continue
        candidate = text[start : end + 1]
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if kind is None or isinstance(parsed, kind):
            return candidate
    return None


def _iter_openers(text: str, openers: str) -> Iterator[int]:
    for idx, char in enumerate(text):
        if char in openers:
            yield idx


def _find_matching_close(text: str, start: int) -> int | None:
    opener = text[start]
    closer = _CLOSERS[opener]
    depth = 0
    in_string = False
    escape = False

    for idx in range(start, len(text)):
        char = text[idx]
        if in_string:
            if escape:
                escape = False
                continue
            if char == "\\":
                escape = True
                continue
            if char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
            continue
        if char == opener:
            depth += 1
            continue
        if char == closer:
            depth -= 1
            if depth == 0:
                return idx
    return None


__all__ = ["extract_json_object", "extract_json_value"]
