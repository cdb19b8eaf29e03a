"""Link validation commands."""

from __future__ import annotations

from pathlib import Path

import typer

from cli.common import emit_json
from core.config import get_settings
from services.link_validator import LinkValidator, extract_urls

app = typer.Typer(
    help="Probe URLs the way research output is validated",
    context_settings={"help_option_names": ["-h", "--help"]},
    add_completion=False,
    no_args_is_help=True,
)


@app.command("check", help="Validate URLs given as arguments or found in a text file")
def check_links(
    urls: list[str] = typer.Argument(None, metavar="URL..."),
    from_file: Path | None = typer.Option(
        None,
        "--from-file",
        exists=True,
        dir_okay=False,
        help="Extract URLs from this text file",
    ),
    timeout: float | None = typer.Option(None, "--timeout", min=0.1, help="Per-request timeout in seconds"),
    concurrency: int | None = typer.Option(None, "--concurrency", min=1, help="Requests per batch"),
    fail_on_invalid: bool = typer.Option(False, "--fail-on-invalid", help="Exit 1 if any URL is not valid"),
) -> None:
    targets = list(urls or [])
    if from_file is not None:
        targets.extend(extract_urls(from_file.read_text(encoding="utf-8", errors="replace")))
    if not targets:
        raise typer.BadParameter("Provide at least one URL or --from-file")

    settings = get_settings()
    with LinkValidator(
        timeout=timeout or settings.link_validation_timeout,
        concurrency=concurrency or settings.link_validation_concurrency,
    ) as validator:
        results = validator.validate(targets)

    emit_json([result.to_dict() for result in results])
    if fail_on_invalid and not all(result.is_valid for result in results):
        raise typer.Exit(code=1)


__all__ = ["app"]
