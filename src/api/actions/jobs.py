import tempfile
from pathlib import Path
from typing import Annotated, List, Literal, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import Response

from api.dependencies import get_engine, get_manager
from schemas.requests import CreateJobRequest, ReprocessRowsRequest
from schemas.responses import EventResponse, JobResponse, RowResponse, StepResponse
from services.engine import Engine
from services.io import decode_supporting_document, export_rows, load_questions, temp_upload
from services.job_manager import JobManager

router = APIRouter(prefix="/jobs", tags=["Jobs"])

_EXPORT_MEDIA_TYPES = {
    "csv": "text/csv",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}
_ACTIONS = ("start", "pause", "resume", "cancel", "reset", "reprocess")

Manager = Annotated[JobManager, Depends(get_manager)]


@router.post("", response_model=JobResponse, status_code=201)
async def create_job(request: CreateJobRequest, manager: Manager):
    """Create a job from questions in the request body."""
    job = await run_in_threadpool(
        manager.create_job,
        name=request.name,
        questions=request.questions,
        owner=request.owner,
        priority=request.priority,
        failure_policy=request.failure_policy,
        instructions=request.instructions,
        documents=[(doc.file_name, doc.content) for doc in request.documents],
    )
    if request.autostart:
        job = await run_in_threadpool(manager.start, job.job_id)
    return JobResponse.from_record(job)


@router.post("/upload", response_model=JobResponse, status_code=201)
async def upload_job(
    manager: Manager,
    file: Annotated[UploadFile, File()],
    name: Annotated[Optional[str], Form()] = None,
    owner: Annotated[Optional[str], Form()] = None,
    priority: Annotated[int, Form()] = 0,
    failure_policy: Annotated[Optional[Literal["continue", "fail_fast"]], Form()] = None,
    instructions: Annotated[Optional[str], Form()] = None,
    documents: Annotated[Optional[List[UploadFile]], File()] = None,
    autostart: Annotated[bool, Form()] = False,
):
    """Create a job from an uploaded CSV or XLSX questionnaire."""
    filename = file.filename or "questions.csv"
    if Path(filename).suffix.lower() not in {".csv", ".xlsx", ".xlsm"}:
        raise HTTPException(status_code=400, detail="Only CSV and XLSX files are supported.")
    content = await file.read()
    with temp_upload(content, filename=filename) as path:
        questions = await run_in_threadpool(load_questions, path)
    if not questions:
        raise HTTPException(status_code=422, detail="No questions found in the uploaded file.")

    supporting = []
    for upload in documents or []:
        data = await upload.read()
        supporting.append(decode_supporting_document(upload.filename or "document", data))

    job = await run_in_threadpool(
        manager.create_job,
        name=name or Path(filename).stem,
        questions=questions,
        owner=owner,
        priority=priority,
        failure_policy=failure_policy,
        instructions=instructions,
        documents=supporting,
    )
    if autostart:
        job = await run_in_threadpool(manager.start, job.job_id)
    return JobResponse.from_record(job)


@router.get("", response_model=List[JobResponse])
async def list_jobs(manager: Manager, owner: Optional[str] = None):
    jobs = await run_in_threadpool(manager.list_jobs, owner=owner)
    return [JobResponse.from_record(job) for job in jobs]


@router.get("/{job_id}", response_model=JobResponse)
async def get_job(job_id: str, manager: Manager):
    job = await run_in_threadpool(manager.get_job, job_id)
    return JobResponse.from_record(job)


@router.post("/{job_id}/{action}", response_model=JobResponse)
async def control_job(job_id: str, action: str, manager: Manager):
    """Apply start, pause, resume, cancel, reset or reprocess to a job."""
    if action not in _ACTIONS:
        raise HTTPException(status_code=404, detail=f"Unknown action: {action}")
    job = await run_in_threadpool(getattr(manager, action), job_id)
    return JobResponse.from_record(job)


@router.post("/{job_id}/rows/reprocess", response_model=JobResponse)
async def reprocess_rows(job_id: str, request: ReprocessRowsRequest, manager: Manager):
    """Regenerate the tailored response of completed rows from reviewer feedback."""
    feedback = {item.row_index: item.feedback for item in request.rows}
    job = await run_in_threadpool(manager.reprocess_rows, job_id, feedback)
    return JobResponse.from_record(job)


@router.get("/{job_id}/rows", response_model=List[RowResponse])
async def list_rows(job_id: str, manager: Manager):
    rows = await run_in_threadpool(manager.list_rows, job_id)
    return [RowResponse.from_record(row) for row in rows]


@router.get("/{job_id}/steps", response_model=List[StepResponse])
async def list_job_steps(job_id: str, manager: Manager):
    steps = await run_in_threadpool(manager.list_steps, job_id)
    return [StepResponse.from_record(step) for step in steps]


@router.get("/{job_id}/rows/{row_index}/steps", response_model=List[StepResponse])
async def list_row_steps(job_id: str, row_index: int, manager: Manager):
    steps = await run_in_threadpool(manager.list_steps, job_id, row_index=row_index)
    return [StepResponse.from_record(step) for step in steps]


@router.get("/{job_id}/events", response_model=List[EventResponse])
async def list_events(
    job_id: str,
    engine: Annotated[Engine, Depends(get_engine)],
    after: Annotated[int, Query(ge=0)] = 0,
):
    """Poll notifications for a job with a sequence number above ``after``."""
    await run_in_threadpool(engine.manager.get_job, job_id)
    return [EventResponse.from_notification(item) for item in engine.events.events(job_id, after=after)]


@router.get("/{job_id}/export")
async def export_job(
    job_id: str,
    manager: Manager,
    format: Annotated[Literal["csv", "xlsx"], Query()] = "csv",
):
    """Download row results as CSV or XLSX."""
    job = await run_in_threadpool(manager.get_job, job_id)
    rows = await run_in_threadpool(manager.list_rows, job_id)
    with tempfile.TemporaryDirectory() as tmp:
        target = Path(tmp) / f"{job_id}.{format}"
        await run_in_threadpool(export_rows, rows, target)
        payload = target.read_bytes()
    filename = f"{Path(job.name).stem or job_id}.{format}"
    return Response(
        content=payload,
        media_type=_EXPORT_MEDIA_TYPES[format],
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
