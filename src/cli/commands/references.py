"""Reference library commands."""

from __future__ import annotations

from pathlib import Path

import typer

from cli.common import emit_json, engine_session, preview
from services.references import normalize_url

app = typer.Typer(
    help="Chunk and inspect reference sources",
    context_settings={"help_option_names": ["-h", "--help"]},
    add_completion=False,
    no_args_is_help=True,
)


@app.command("add", help="Chunk a text file into the reference library")
def add_reference(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, metavar="FILE"),
    url: str | None = typer.Option(None, "--url", help="Store under this URL instead of the file hash"),
    data_dir: Path | None = typer.Option(None, "--data-dir", help="Data directory"),
) -> None:
    content = path.read_text(encoding="utf-8", errors="replace")
    with engine_session(data_dir) as engine:
        if url:
            source_id = normalize_url(url)
            chunks = engine.library.add_source(source_id, content)
            added = len(chunks)
        else:
            source_id = engine.library.add_document(path.name, content)
            added = len(engine.library.chunks(source_id))
        emit_json({"source_id": source_id, "chunks": added})


@app.command("list", help="List stored sources")
def list_references(
    data_dir: Path | None = typer.Option(None, "--data-dir", help="Data directory"),
) -> None:
    with engine_session(data_dir) as engine:
        emit_json(engine.library.sources())


@app.command("show", help="Show the chunks of one source")
def show_reference(
    source_id: str = typer.Argument(..., metavar="SOURCE_ID"),
    full: bool = typer.Option(False, "--full", help="Print whole chunk text"),
    data_dir: Path | None = typer.Option(None, "--data-dir", help="Data directory"),
) -> None:
    with engine_session(data_dir) as engine:
        chunks = engine.library.chunks(source_id)
        if not chunks and not source_id.startswith("document:"):
            chunks = engine.library.chunks(normalize_url(source_id))
        emit_json(
            [
                {
                    "chunk_index": chunk.chunk_index,
                    "token_count": chunk.token_count,
                    "start": chunk.start,
                    "end": chunk.end,
                    "overlap_chars": chunk.overlap_chars,
                    "text": chunk.text if full else preview(chunk.text),
                }
                for chunk in chunks
            ]
        )


@app.command("remove", help="Delete a source and its chunks")
def remove_reference(
    source_id: str = typer.Argument(..., metavar="SOURCE_ID"),
    data_dir: Path | None = typer.Option(None, "--data-dir", help="Data directory"),
) -> None:
    with engine_session(data_dir) as engine:
        emit_json({"removed": engine.library.remove(source_id)})


__all__ = ["app"]
