"""Job lifecycle commands."""

from __future__ import annotations

from pathlib import Path

import typer

from cli.common import emit_json, engine_session, job_payload, preview, row_payload, step_payload
from services.engine import Engine
from services.io import export_rows, load_questions, load_supporting_document
from services.state_machine import JobStatus

app = typer.Typer(
    help="Create, run and control questionnaire jobs",
    context_settings={"help_option_names": ["-h", "--help"]},
    add_completion=False,
    no_args_is_help=True,
)

_DATA_DIR_HELP = "Data directory (defaults to RFPFLOW_DATA_DIR)"


@app.command("create", help="Create a job from a CSV/XLSX questionnaire")
def create_job(
    questions_file: Path = typer.Argument(
        ...,
        exists=True,
        dir_okay=False,
        readable=True,
        metavar="QUESTIONS",
    ),
    name: str | None = typer.Option(None, "--name", help="Job name (defaults to the file stem)"),
    owner: str | None = typer.Option(None, "--owner", help="Owning user"),
    priority: int = typer.Option(0, "--priority", help="Higher runs first in listings"),
    failure_policy: str | None = typer.Option(
        None,
        "--failure-policy",
        help="continue|fail_fast",
    ),
    instructions: str | None = typer.Option(None, "--instructions", help="Instructions for the tailored response"),
    instructions_file: Path | None = typer.Option(
        None,
        "--instructions-file",
        exists=True,
        dir_okay=False,
        help="Read instructions from a text file",
    ),
    documents: list[Path] = typer.Option(
        None,
        "--doc",
        exists=True,
        dir_okay=False,
        help="Supporting document, repeatable",
    ),
    start: bool = typer.Option(False, "--start", help="Start the job and wait for it"),
    data_dir: Path | None = typer.Option(None, "--data-dir", help=_DATA_DIR_HELP),
) -> None:
    if failure_policy is not None and failure_policy not in {"continue", "fail_fast"}:
        raise typer.BadParameter("--failure-policy must be continue or fail_fast")
    try:
        questions = load_questions(questions_file)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    if not questions:
        raise typer.BadParameter(f"No questions found in {questions_file}")
    if instructions_file is not None:
        instructions = instructions_file.read_text(encoding="utf-8")

    with engine_session(data_dir) as engine:
        job = engine.manager.create_job(
            name=name or questions_file.stem,
            questions=questions,
            owner=owner,
            priority=priority,
            failure_policy=failure_policy,
            instructions=instructions,
            documents=[load_supporting_document(path) for path in documents or []],
        )
        if start:
            engine.manager.start(job.job_id)
            job = engine.manager.wait(job.job_id)
        emit_json(job_payload(job))


@app.command("list", help="List jobs by priority, then creation time")
def list_jobs(
    owner: str | None = typer.Option(None, "--owner", help="Only jobs of this owner"),
    data_dir: Path | None = typer.Option(None, "--data-dir", help=_DATA_DIR_HELP),
) -> None:
    with engine_session(data_dir) as engine:
        emit_json([job_payload(job) for job in engine.manager.list_jobs(owner=owner)])


@app.command("show", help="Show a job and its rows")
def show_job(
    job_id: str = typer.Argument(..., metavar="JOB_ID"),
    rows: bool = typer.Option(True, "--rows/--no-rows", help="Include row summaries"),
    data_dir: Path | None = typer.Option(None, "--data-dir", help=_DATA_DIR_HELP),
) -> None:
    with engine_session(data_dir) as engine:
        payload = job_payload(engine.manager.get_job(job_id))
        if rows:
            payload["rows"] = [
                {**row_payload(row), "output": preview(row.output)}
                for row in engine.manager.list_rows(job_id)
            ]
        emit_json(payload)


@app.command("steps", help="Show step records of a job")
def show_steps(
    job_id: str = typer.Argument(..., metavar="JOB_ID"),
    row: int | None = typer.Option(None, "--row", min=1, help="One-based row number"),
    full: bool = typer.Option(False, "--full", help="Include prompts and outputs"),
    data_dir: Path | None = typer.Option(None, "--data-dir", help=_DATA_DIR_HELP),
) -> None:
    row_index = row - 1 if row is not None else None
    with engine_session(data_dir) as engine:
        steps = engine.manager.list_steps(job_id, row_index=row_index)
        emit_json([step_payload(step, full=full) for step in steps])


@app.command("run", help="Start, resume or recover a job and wait for it")
def run_job(
    job_id: str = typer.Argument(..., metavar="JOB_ID"),
    data_dir: Path | None = typer.Option(None, "--data-dir", help=_DATA_DIR_HELP),
) -> None:
    with engine_session(data_dir) as engine:
        _run_to_exit(engine, job_id)


@app.command("resume", help="Resume a paused job and wait for it")
def resume_job(
    job_id: str = typer.Argument(..., metavar="JOB_ID"),
    wait: bool = typer.Option(True, "--wait/--no-wait", help="Block until the job stops"),
    data_dir: Path | None = typer.Option(None, "--data-dir", help=_DATA_DIR_HELP),
) -> None:
    with engine_session(data_dir) as engine:
        job = engine.manager.resume(job_id)
        if wait:
            job = engine.manager.wait(job_id)
        emit_json(job_payload(job))


@app.command("pause", help="Pause a running job at the next stage boundary")
def pause_job(
    job_id: str = typer.Argument(..., metavar="JOB_ID"),
    data_dir: Path | None = typer.Option(None, "--data-dir", help=_DATA_DIR_HELP),
) -> None:
    with engine_session(data_dir) as engine:
        emit_json(job_payload(engine.manager.pause(job_id)))


@app.command("cancel", help="Cancel a running or paused job")
def cancel_job(
    job_id: str = typer.Argument(..., metavar="JOB_ID"),
    data_dir: Path | None = typer.Option(None, "--data-dir", help=_DATA_DIR_HELP),
) -> None:
    with engine_session(data_dir) as engine:
        emit_json(job_payload(engine.manager.cancel(job_id)))


@app.command("reset", help="Clear all outputs and steps; the job returns to not_started")
def reset_job(
    job_id: str = typer.Argument(..., metavar="JOB_ID"),
    data_dir: Path | None = typer.Option(None, "--data-dir", help=_DATA_DIR_HELP),
) -> None:
    with engine_session(data_dir) as engine:
        emit_json(job_payload(engine.manager.reset(job_id)))


@app.command("reprocess", help="Clear outputs of a finished job and run it again")
def reprocess_job(
    job_id: str = typer.Argument(..., metavar="JOB_ID"),
    wait: bool = typer.Option(True, "--wait/--no-wait", help="Block until the job stops"),
    data_dir: Path | None = typer.Option(None, "--data-dir", help=_DATA_DIR_HELP),
) -> None:
    with engine_session(data_dir) as engine:
        job = engine.manager.reprocess(job_id)
        if wait:
            job = engine.manager.wait(job_id)
        emit_json(job_payload(job))


@app.command("revise", help="Regenerate the response of completed rows from feedback")
def revise_job(
    job_id: str = typer.Argument(..., metavar="JOB_ID"),
    feedback: list[str] = typer.Option(
        ...,
        "--feedback",
        help="ROW:TEXT with a one-based row number, repeatable",
    ),
    wait: bool = typer.Option(True, "--wait/--no-wait", help="Block until the job stops"),
    data_dir: Path | None = typer.Option(None, "--data-dir", help=_DATA_DIR_HELP),
) -> None:
    revisions = _parse_feedback(feedback)
    with engine_session(data_dir) as engine:
        try:
            job = engine.manager.reprocess_rows(job_id, revisions)
        except ValueError as exc:
            raise typer.BadParameter(str(exc)) from exc
        if wait:
            job = engine.manager.wait(job_id)
        emit_json(job_payload(job))


@app.command("export", help="Write row results to a .csv or .xlsx file")
def export_job(
    job_id: str = typer.Argument(..., metavar="JOB_ID"),
    output: Path = typer.Argument(..., dir_okay=False, metavar="OUTPUT"),
    data_dir: Path | None = typer.Option(None, "--data-dir", help=_DATA_DIR_HELP),
) -> None:
    if output.suffix.lower() not in {".csv", ".xlsx"}:
        raise typer.BadParameter("OUTPUT must end with .csv or .xlsx")
    with engine_session(data_dir) as engine:
        rows = engine.manager.list_rows(job_id)
        path = export_rows(rows, output)
        emit_json({"job_id": job_id, "rows": len(rows), "path": str(path)})


def _run_to_exit(engine: Engine, job_id: str) -> None:
    manager = engine.manager
    job = manager.get_job(job_id)
    if job.status == JobStatus.NOT_STARTED.value:
        manager.start(job_id)
    elif job.status == JobStatus.PAUSED.value:
        manager.resume(job_id)
    elif job.status == JobStatus.IN_PROGRESS.value:
        if not manager.recover_interrupted(job_id):
            typer.echo(f"Job {job_id} is held by another worker.", err=True)
            raise typer.Exit(code=1)
    else:
        typer.echo(f"Job {job_id} is {job.status}; use reprocess or reset.", err=True)
        raise typer.Exit(code=1)
    emit_json(job_payload(manager.wait(job_id)))


def _parse_feedback(values: list[str]) -> dict[int, str]:
    revisions: dict[int, str] = {}
    for value in values:
        number, sep, text = value.partition(":")
        if not sep or not number.strip().isdigit() or int(number) < 1:
            raise typer.BadParameter(f"Expected ROW:TEXT with a one-based row number, got {value!r}")
        if not text.strip():
            raise typer.BadParameter(f"Feedback for row {number.strip()} is empty")
        row_index = int(number) - 1
        if row_index in revisions:
            raise typer.BadParameter(f"Row {number.strip()} was given more than once")
        revisions[row_index] = text.strip()
    return revisions


__all__ = ["app"]
