"""Typer CLI entrypoint for questionnaire jobs."""

from __future__ import annotations

import logging
import os
import shlex
import sys
from importlib import import_module

import typer

from rfpflow import __version__

_SUBCOMMAND_SPECS: list[tuple[str, str, str]] = [
    ("jobs", "cli.commands.jobs", "Create, run and control questionnaire jobs"),
    ("cache", "cli.commands.cache", "Inspect and prune the stage output cache"),
    ("links", "cli.commands.links", "Probe URLs the way research output is validated"),
    ("references", "cli.commands.references", "Chunk and inspect reference sources"),
]
_SUBCOMMAND_NAMES = {name for name, _, _ in _SUBCOMMAND_SPECS}
_SUBCOMMANDS_REGISTERED = False
_ROOT_OPTIONS_WITH_VALUE = {"--log-level"}

app = typer.Typer(
    help=(
        "RFP questionnaire pipeline\n\n"
        "Runs each question through context resolution, reference research, "
        "a generic draft and a tailored response, with pause/resume and a shared stage cache.\n"
    ),
    context_settings={"help_option_names": ["-h", "--help"]},
    invoke_without_command=True,
    add_completion=True,
)


@app.callback()
def root(
    ctx: typer.Context,
    version_flag: bool = typer.Option(
        False,
        "-v",
        "--version",
        help="Print the version",
    ),
    log_level: str | None = typer.Option(
        None,
        "--log-level",
        help="Logging level (defaults to RFPFLOW_LOG_LEVEL)",
    ),
) -> None:
    if version_flag:
        typer.echo(__version__)
        raise typer.Exit()
    _configure_logging(log_level)
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


@app.command(help="Serve the HTTP API and recover interrupted jobs")
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
    port: int = typer.Option(8000, "--port", help="Bind port"),
    recover: bool = typer.Option(
        True,
        "--recover/--no-recover",
        help="Relaunch jobs left in_progress by a previous process",
    ),
) -> None:
    import uvicorn

    from api.dependencies import get_engine
    from api.main import app as api_app

    engine = get_engine()
    if recover:
        recovered = engine.manager.recover_interrupted()
        if recovered:
            typer.echo(f"Recovered {len(recovered)} interrupted job(s)", err=True)
    try:
        uvicorn.run(api_app, host=host, port=port)
    finally:
        engine.close()


def _configure_logging(level: str | None) -> None:
    if level is None:
        from core.config import get_settings

        level = get_settings().log_level
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        raise typer.BadParameter(f"Unknown log level: {level}")
    logging.basicConfig(
        level=numeric,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _parse_invoked_subcommand() -> str | None:
    completion_args = os.getenv("_TYPER_COMPLETE_ARGS")
    tokens: list[str]
    if completion_args:
        try:
            tokens = shlex.split(completion_args)
        except ValueError:
            tokens = completion_args.split()
        if tokens:
            tokens = tokens[1:]
    else:
        tokens = sys.argv[1:]

    skip_next = False
    for token in tokens:
        if skip_next:
            skip_next = False
            continue
        if token in _SUBCOMMAND_NAMES:
            return token
        if token in _ROOT_OPTIONS_WITH_VALUE:
            skip_next = True
            continue
        if token.startswith("-"):
            continue
        break
    return None


def _register_subcommands() -> None:
    global _SUBCOMMANDS_REGISTERED
    if _SUBCOMMANDS_REGISTERED:
        return

    selected = _parse_invoked_subcommand()
    for name, module_path, help_text in _SUBCOMMAND_SPECS:
        if selected == name:
            module = import_module(module_path)
            app.add_typer(module.app, name=name)
            continue
        app.add_typer(
            typer.Typer(
                help=help_text,
                add_completion=False,
                no_args_is_help=True,
            ),
            name=name,
        )

    _SUBCOMMANDS_REGISTERED = True


def main() -> None:
    _register_subcommands()
    app()


__all__ = ["app", "main"]
