"""Split reference material into overlapping, retrieval-sized chunks.

Paragraphs are grouped greedily up to the token target. A paragraph that is
larger than the target is split on sentence boundaries, and each continuation
chunk repeats the last one or two sentences of the chunk before it. Chunk text
is always an exact slice of the source, so ``start``/``end`` offsets and the
``overlap_chars`` prefix let callers stitch the original back together.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass

from persistence.models import ReferenceChunk

_PARAGRAPH_BREAK_RE = re.compile(r"\n\s*\n")
_SENTENCE_BREAK_RE = re.compile(r"(?<=[.!?])\s+")
_CHARS_PER_TOKEN = 4

Span = tuple[int, int]


def estimate_tokens(text: str) -> int:
    """Token estimate used everywhere chunk sizes are compared."""
    return math.ceil(len(text) / _CHARS_PER_TOKEN)


@dataclass(frozen=True)
class ChunkerConfig:
    max_tokens: int = 600
    overlap_tokens: int = 100
    min_tokens: int = 50
    hard_ceiling_tokens: int = 8000
    overlap_sentences: int = 2


class ContentChunker:
    def __init__(self, config: ChunkerConfig | None = None) -> None:
        self._config = config or ChunkerConfig()

    @property
    def config(self) -> ChunkerConfig:
        return self._config

    def chunk(self, content: str, source_id: str) -> list[ReferenceChunk]:
        if not content or not content.strip():
            return []

        pieces: list[Span] = []
        group: Span | None = None
        for paragraph in _split_spans(content, 0, len(content), _PARAGRAPH_BREAK_RE):
            if self._tokens(content, paragraph) > self._config.max_tokens:
                if group is not None:
                    pieces.append(group)
                    group = None
                pieces.extend(self._split_paragraph(content, paragraph))
                continue
            if group is None:
                group = paragraph
                continue
            combined = (group[0], paragraph[1])
            if self._tokens(content, combined) <= self._config.max_tokens:
                group = combined
            else:
                pieces.append(group)
                group = paragraph
        if group is not None:
            pieces.append(group)

        return self._build(content, source_id, self._merge_small(content, pieces))

    def _split_paragraph(self, content: str, paragraph: Span) -> list[Span]:
        sentences: list[Span] = []
        window = self._config.hard_ceiling_tokens * _CHARS_PER_TOKEN
        for sentence in _split_spans(content, paragraph[0], paragraph[1], _SENTENCE_BREAK_RE):
            if self._tokens(content, sentence) > self._config.hard_ceiling_tokens:
                sentences.extend(_windows(sentence, window))
            else:
                sentences.append(sentence)

        pieces: list[Span] = []
        first = 0
        fresh = 0
        for idx in range(1, len(sentences)):
            candidate = (sentences[first][0], sentences[idx][1])
            if self._tokens(content, candidate) <= self._config.max_tokens:
                continue
            pieces.append((sentences[first][0], sentences[idx - 1][1]))
            first = self._overlap_start(content, sentences, fresh, idx)
            fresh = idx
        pieces.append((sentences[first][0], sentences[-1][1]))
        return pieces

    def _overlap_start(self, content: str, sentences: list[Span], fresh: int, idx: int) -> int:
        """Index of the first sentence to repeat at the head of the next chunk."""
        for count in range(self._config.overlap_sentences, 0, -1):
            start = idx - count
            if start < fresh:
                continue
            seed = (sentences[start][0], sentences[idx - 1][1])
            if self._tokens(content, seed) > self._config.overlap_tokens:
                continue
            if self._tokens(content, (seed[0], sentences[idx][1])) > self._config.max_tokens:
                continue
            return start
        return idx

    def _merge_small(self, content: str, pieces: list[Span]) -> list[Span]:
        merged: list[Span] = []
        carried: Span | None = None
        ceiling = self._config.hard_ceiling_tokens
        for start, end in pieces:
            if carried is not None:
                if self._tokens(content, (carried[0], end)) <= ceiling:
                    start = min(start, carried[0])
                else:
                    merged.append(carried)
                carried = None
            if self._tokens(content, (start, end)) >= self._config.min_tokens:
                merged.append((start, end))
                continue
            if merged and self._tokens(content, (merged[-1][0], end)) <= ceiling:
                merged[-1] = (merged[-1][0], max(merged[-1][1], end))
            else:
                carried = (start, end)
        if carried is not None:
            merged.append(carried)
        return merged

    def _build(self, content: str, source_id: str, pieces: list[Span]) -> list[ReferenceChunk]:
        chunks: list[ReferenceChunk] = []
        previous_end: int | None = None
        for index, (start, end) in enumerate(pieces):
            text = content[start:end]
            overlap = max(0, previous_end - start) if previous_end is not None else 0
            chunks.append(
                ReferenceChunk(
                    source_id=source_id,
                    chunk_index=index,
                    text=text,
                    token_count=estimate_tokens(text),
                    start=start,
                    end=end,
                    overlap_chars=overlap,
                )
            )
            previous_end = end
        return chunks

    @staticmethod
    def _tokens(content: str, span: Span) -> int:
        return math.ceil((span[1] - span[0]) / _CHARS_PER_TOKEN)


def chunk_content(content: str, source_id: str, *, config: ChunkerConfig | None = None) -> list[ReferenceChunk]:
    return ContentChunker(config).chunk(content, source_id)


def _split_spans(content: str, start: int, end: int, pattern: re.Pattern[str]) -> list[Span]:
    spans: list[Span] = []
    cursor = start
    for match in pattern.finditer(content, start, end):
        spans.append((cursor, match.start()))
        cursor = match.end()
    spans.append((cursor, end))
    return [span for span in (_trim(content, s, e) for s, e in spans) if span[1] > span[0]]


def _trim(content: str, start: int, end: int) -> Span:
    while start < end and content[start].isspace():
        start += 1
    while end > start and content[end - 1].isspace():
        end -= 1
    return start, end


def _windows(span: Span, size: int) -> list[Span]:
    return [(offset, min(offset + size, span[1])) for offset in range(span[0], span[1], size)]


__all__ = ["ChunkerConfig", "ContentChunker", "chunk_content", "estimate_tokens"]
