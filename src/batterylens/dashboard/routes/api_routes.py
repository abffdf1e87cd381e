"""
REST API routes for the BatteryLens dashboard.

This module handles the workflow endpoints:
- Health check
- Image upload and job management
- Batch extraction
- Session export, import and reset
"""

from __future__ import annotations

import logging
import urllib.parse
from datetime import datetime, timezone
from typing import Annotated, Any

from fastapi import APIRouter, Depends, File, Form, Header, HTTPException, UploadFile
from fastapi.responses import JSONResponse, Response

from batterylens import __version__
from batterylens.config import get_settings
from batterylens.exceptions import (
    ArchiveError,
    BatchAlreadyRunningError,
    BatchDispatchError,
    InvalidJobStateError,
    JobNotFoundError,
    SessionImportError,
)
from batterylens.extraction import expand_archive, is_archive, is_image_name, make_upload_job
from batterylens.models import ImageJob
from batterylens.session import BatchSummary
from batterylens.utils import validators

from ..dependencies import SessionDep
from ..models import DuplicateDecision, HealthResponse, ImportResponse


async def verify_csrf_header(x_requested_with: str | None = Header(None, alias="X-Requested-With")) -> None:
    """CSRF protection via custom header check.

    Verifies that requests include the X-Requested-With header, which cannot be set
    by cross-origin requests without CORS preflight. This prevents CSRF attacks.

    Args:
        x_requested_with: The X-Requested-With header value

    Raises:
        HTTPException: 403 if header is missing
    """
    if x_requested_with is None:
        raise HTTPException(status_code=403, detail="Missing X-Requested-With header")


logger = logging.getLogger(__name__)

router = APIRouter()


def _job_body(job: ImageJob, include_preview: bool = True) -> dict[str, Any]:
    exclude = None if include_preview else {"preview"}
    return job.model_dump(mode="json", exclude=exclude)


@router.get("/api/health")
async def health() -> HealthResponse:
    return HealthResponse(version=__version__)


@router.post("/api/jobs", dependencies=[Depends(verify_csrf_header)])
async def upload_jobs(
    session: SessionDep,
    files: Annotated[list[UploadFile], File(description="Images and/or ZIP archives")],
    modified: Annotated[list[int] | None, Form(description="Modification time (UNIX ms) per file, in upload order")] = None,
) -> list[dict[str, Any]]:
    """Upload images and ZIP archives as ImageJobs.

    Each image becomes one job; each archive is expanded into one job per
    image entry. Duplicate file names are flagged according to the session's
    duplicate policy.

    Returns:
        The created jobs, in upload order.

    Raises:
        HTTPException: 400 for unsupported files or broken archives,
            413 if a file exceeds the size limits.
    """
    settings = get_settings()
    jobs: list[ImageJob] = []

    for position, upload in enumerate(files):
        name = upload.filename or ""
        try:
            validators.validate_file_name(name)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e)) from None

        data = await upload.read()

        if is_archive(name, upload.content_type):
            if len(data) > settings.max_zip_size:
                raise HTTPException(
                    status_code=413,
                    detail=f"Archive {name} is too large ({len(data)} bytes, max: {settings.max_zip_size})",
                )
            try:
                jobs.extend(expand_archive(data, name, settings))
            except ArchiveError as e:
                raise HTTPException(status_code=400, detail=str(e)) from e
        elif is_image_name(name):
            if len(data) > settings.max_upload_size:
                raise HTTPException(
                    status_code=413,
                    detail=f"Image {name} is too large ({len(data)} bytes, max: {settings.max_upload_size})",
                )
            modified_ms = modified[position] if modified and position < len(modified) else None
            jobs.append(make_upload_job(name, data, modified_ms))
        else:
            raise HTTPException(status_code=400, detail=f"Unsupported file type: {name}")

    added = session.add_jobs(jobs)
    logger.info(f"Queued {len(added)} jobs from {len(files)} uploaded files")
    return [_job_body(job) for job in added]


@router.get("/api/jobs")
async def list_jobs(session: SessionDep, include_preview: bool = False) -> list[dict[str, Any]]:
    """List all jobs of the session. Previews are omitted unless requested."""
    return [_job_body(job, include_preview) for job in session.list_jobs()]


@router.post("/api/jobs/{job_id:path}/requeue", dependencies=[Depends(verify_csrf_header)])
async def requeue_job(job_id: str, session: SessionDep) -> dict[str, Any]:
    """Move a failed job back to the queue.

    Raises:
        HTTPException: 404 if the job does not exist, 409 if it has not failed.
    """
    try:
        job = session.requeue(job_id)
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except InvalidJobStateError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    return _job_body(job, include_preview=False)


@router.post("/api/jobs/{job_id:path}/decision", dependencies=[Depends(verify_csrf_header)])
async def decide_duplicate(job_id: str, decision: DuplicateDecision, session: SessionDep) -> dict[str, Any]:
    """Process or skip a held duplicate.

    Raises:
        HTTPException: 404 if the job does not exist, 409 if it is not awaiting a decision.
    """
    try:
        job = session.decide_duplicate(job_id, process=decision.action == "process")
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except InvalidJobStateError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    return _job_body(job, include_preview=False)


@router.post("/api/batches", dependencies=[Depends(verify_csrf_header)])
async def run_batch(session: SessionDep) -> BatchSummary:
    """Run one extraction batch over every queued job.

    Progress is streamed to ``/api/batches/stream`` subscribers while the
    batch runs.

    Raises:
        HTTPException: 409 if a batch is already running,
            503 if extraction is not configured or the batch could not be dispatched.
    """
    try:
        return await session.run_batch()
    except BatchAlreadyRunningError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except BatchDispatchError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e


@router.get("/api/session/export")
async def export_session(session: SessionDep) -> JSONResponse:
    """Download the session as a JSON file.

    Returns:
        JSONResponse with structure ``{batteryId: {history, chartInfo, processedFileNames}}``.
        Filename format: ``batterylens_session_{timestamp}.json``
    """
    timestamp = datetime.now(tz=timezone.utc).strftime("%Y%m%d_%H%M%S")
    filename = urllib.parse.quote(validators.safe_file_name(f"batterylens_session_{timestamp}.json"), safe="")
    return JSONResponse(
        content=session.export_session(),
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{filename}"},
    )


@router.post("/api/session/import", dependencies=[Depends(verify_csrf_header)])
async def import_session(session: SessionDep, file: Annotated[UploadFile, File(description="Session JSON export")]) -> ImportResponse:
    """Merge an exported session file into the current session.

    Raises:
        HTTPException: 400 if the file is malformed (nothing is imported),
            413 if it exceeds the upload size limit.
    """
    settings = get_settings()
    data = await file.read()
    if len(data) > settings.max_upload_size:
        raise HTTPException(status_code=413, detail=f"Session file too large ({len(data)} bytes, max: {settings.max_upload_size})")

    try:
        batteries = await session.import_session(data, source=file.filename or "session")
    except SessionImportError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return ImportResponse(batteries=batteries)


@router.delete("/api/session", dependencies=[Depends(verify_csrf_header)])
async def clear_session(session: SessionDep) -> Response:
    """Drop all batteries, jobs and processed file names.

    Raises:
        HTTPException: 409 while a batch is running.
    """
    try:
        session.clear()
    except BatchAlreadyRunningError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    return Response(status_code=204)
