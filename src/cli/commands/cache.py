"""Stage cache commands."""

from __future__ import annotations

from pathlib import Path

import typer

from cli.common import emit_json, engine_session

app = typer.Typer(
    help="Inspect and prune the stage output cache",
    context_settings={"help_option_names": ["-h", "--help"]},
    add_completion=False,
    no_args_is_help=True,
)

_CACHED_STAGES = ("research", "draft")


@app.command("stats", help="Entry counts per cached stage")
def cache_stats(
    data_dir: Path | None = typer.Option(None, "--data-dir", help="Data directory"),
) -> None:
    with engine_session(data_dir) as engine:
        emit_json({"scope": engine.cache.scope, "stages": engine.cache.stats()})


@app.command("prune", help="Delete cache entries older than N days")
def cache_prune(
    days: int = typer.Option(
        30,
        "--days",
        min=1,
        help="Remove entries created more than this many days ago",
    ),
    data_dir: Path | None = typer.Option(None, "--data-dir", help="Data directory"),
) -> None:
    with engine_session(data_dir) as engine:
        emit_json({"removed": engine.cache.prune_older_than(days=days)})


@app.command("invalidate", help="Delete cache entries by stage and/or key")
def cache_invalidate(
    stage: str | None = typer.Option(None, "--stage", help="research|draft"),
    key: str | None = typer.Option(None, "--key", help="A single fingerprint"),
    data_dir: Path | None = typer.Option(None, "--data-dir", help="Data directory"),
) -> None:
    if stage is not None and stage not in _CACHED_STAGES:
        raise typer.BadParameter(f"--stage must be one of: {', '.join(_CACHED_STAGES)}")
    with engine_session(data_dir) as engine:
        emit_json({"removed": engine.cache.invalidate(stage=stage, key=key)})


__all__ = ["app"]
