"""
Jobs API Router - extraction trigger

POST /jobs/{job_id}/extractions  - upload a work package, extraction runs detached
GET  /jobs/{job_id}/extraction   - extraction state and assets of a job

The upload is acknowledged (202) before any page work; extraction errors
never reach the triggering request.
"""

import asyncio
import logging
import os
import re
from uuid import uuid4

from fastapi import APIRouter, BackgroundTasks, Depends, File, HTTPException, UploadFile, status

from workpack.core.config import settings
from workpack.engine.document_loader import read_package_preview
from workpack.models.schemas import (
    ExtractionAcceptedResponse,
    ExtractionStatusResponse,
    PackagePreviewSchema,
)
from workpack.repositories.job_repository import JobRepository, get_job_repository
from workpack.services.background_tasks import ExtractionTaskRunner, get_extraction_task_runner

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["Jobs"])

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def _is_pdf(file: UploadFile) -> bool:
    filename = (file.filename or "").lower()
    return filename.endswith(".pdf") or file.content_type == "application/pdf"


def _package_path(job_id: str, filename: str) -> str:
    safe_name = _UNSAFE_FILENAME_CHARS.sub("_", os.path.basename(filename or "package.pdf"))
    return os.path.join(settings.uploads_dir, f"job_{job_id}", "source", f"{uuid4().hex}_{safe_name}")


def _remove_upload(pdf_path: str) -> None:
    try:
        os.remove(pdf_path)
    except OSError as e:
        logger.warning(f"Could not remove rejected upload {pdf_path}: {e}")


@router.post(
    "/{job_id}/extractions",
    response_model=ExtractionAcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def trigger_extraction(
    job_id: str,
    background_tasks: BackgroundTasks,
    file: UploadFile = File(..., description="Work-package PDF"),
    repository: JobRepository = Depends(get_job_repository),
    task_runner: ExtractionTaskRunner = Depends(get_extraction_task_runner),
):
    """
    Upload a job package and start asset extraction.
    
    This endpoint:
    1. Validates and saves the uploaded PDF
    2. Reads a bounded first-page preview
    3. Schedules extraction in the background
    4. Returns immediately
    
    Use GET /jobs/{job_id}/extraction to follow progress.
    """
    if not _is_pdf(file):
        raise HTTPException(status_code=400, detail="Only PDF files are supported")
    
    job = repository.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"Job {job_id} not found")
    
    content = await file.read()
    if not content:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")
    if len(content) > settings.max_upload_bytes:
        raise HTTPException(
            status_code=413,
            detail=f"File exceeds {settings.max_upload_bytes // (1024 * 1024)}MB limit",
        )
    
    pdf_path = _package_path(job_id, file.filename)
    try:
        os.makedirs(os.path.dirname(pdf_path), exist_ok=True)
        with open(pdf_path, "wb") as f:
            f.write(content)
    except OSError as e:
        raise HTTPException(status_code=500, detail=f"Failed to save file: {e}")
    
    try:
        recorded = repository.set_source_pdf(job_id, pdf_path)
    except Exception as e:
        logger.error(f"Job {job_id}: could not record source PDF: {e}")
        _remove_upload(pdf_path)
        raise HTTPException(status_code=500, detail="Failed to record uploaded package")
    if not recorded:
        _remove_upload(pdf_path)
        raise HTTPException(status_code=404, detail=f"Job {job_id} not found")
    
    preview = await asyncio.to_thread(
        read_package_preview,
        pdf_path,
        file.filename,
        full_parse_max_bytes=settings.preview_full_parse_max_bytes,
        timeout_seconds=settings.preview_parse_timeout_seconds,
        max_chars=settings.preview_max_chars,
    )
    
    task_runner.schedule_extraction(background_tasks.add_task, job_id, pdf_path)
    
    logger.info(f"Job {job_id}: package {file.filename} accepted ({len(content)} bytes)")
    
    return ExtractionAcceptedResponse(
        job_id=job_id,
        status="accepted",
        preview=PackagePreviewSchema(text=preview.text, source=preview.source),
    )


@router.get("/{job_id}/extraction", response_model=ExtractionStatusResponse)
async def get_extraction_status(
    job_id: str,
    repository: JobRepository = Depends(get_job_repository),
):
    """Check a job's extraction state."""
    job = repository.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"Job {job_id} not found")
    
    state = job.state
    return ExtractionStatusResponse(
        job_id=job.id,
        status=state.status.value,
        started_at=state.started_at,
        ended_at=state.ended_at,
        processing_time_ms=state.processing_time_ms,
        error=state.error,
        assets=job.extracted_assets,
    )
