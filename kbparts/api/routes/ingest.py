import logging
import uuid
from datetime import datetime, timezone
from typing import Optional
from fastapi import APIRouter, UploadFile, File, Form, Depends, HTTPException, Request

from kbparts.core.errors import DocumentTooLargeError, InvalidDocumentError, StorageLimitExceededError
from kbparts.core.pipeline.ingestion import IngestionPipeline
from kbparts.core.upload.orchestrator import UploadBatch
from kbparts.models.upload import BatchProgress, UploadJob, UploadJobStatus

router = APIRouter()
logger = logging.getLogger(__name__)

def get_ingestion_pipeline(request: Request) -> IngestionPipeline:
    return request.app.state.ingestion_pipeline

def _refresh(job: UploadJob, progress: BatchProgress) -> UploadJob:
    job.progress = progress
    if progress.pending == 0:
        if job.completed_at is None:
            job.completed_at = datetime.now(timezone.utc).isoformat()
        job.status = UploadJobStatus.completed if progress.failed == 0 else UploadJobStatus.completed_with_errors
    elif progress.paused:
        job.status = UploadJobStatus.paused
    else:
        job.status = UploadJobStatus.running
    return job

def _lookup(request: Request, job_id: str) -> tuple[UploadJob, UploadBatch]:
    job = request.app.state.jobs_db.get(job_id)
    batch = request.app.state.batches.get(job_id)
    if job is None or batch is None:
        raise HTTPException(status_code=404, detail="Job ID not found.")
    return job, batch

@router.post("/ingest", response_model=UploadJob, summary="Upload a PDF, splitting it into parts when it is large")
async def ingest_file(
    request: Request,
    file: UploadFile = File(...),
    description: Optional[str] = Form(None),
    pipeline: IngestionPipeline = Depends(get_ingestion_pipeline)
):
    """
    1. Validates and splits the PDF (nothing is stored if this fails).
    2. Starts the part batch on the event loop and returns immediately.
    3. Progress is tracked on the returned job.
    """
    if not file.filename or not file.filename.lower().endswith(".pdf"):
        raise HTTPException(status_code=400, detail="Only PDF files are supported.")

    jobs_db = request.app.state.jobs_db
    job_id = str(uuid.uuid4())

    def progress_callback(progress: BatchProgress):
        target_job = jobs_db.get(job_id)
        if target_job:
            _refresh(target_job, progress)

    try:
        data = await file.read()
        logger.info(f"Uploading '{file.filename}' ({len(data)} bytes), job_id: {job_id}")
        split, batch = await pipeline.start_upload(data, file.filename, description, progress_callback)
    except (InvalidDocumentError, DocumentTooLargeError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StorageLimitExceededError as e:
        raise HTTPException(status_code=507, detail=str(e))
    except Exception as e:
        logger.exception(f"Upload initiation failed for {file.filename}")
        raise HTTPException(status_code=500, detail=str(e))
    finally:
        await file.close()

    job = UploadJob(
        job_id=job_id,
        filename=file.filename,
        total_pages=split.total_pages,
        was_split=split.was_split,
        status=UploadJobStatus.queued,
        progress=batch.progress,
        created_at=datetime.now(timezone.utc).isoformat()
    )
    jobs_db[job_id] = job
    request.app.state.batches[job_id] = batch
    return job

@router.get("/ingest/status/{job_id}", response_model=UploadJob, summary="Get the live progress of an upload job")
def get_ingest_status(job_id: str, request: Request):
    job, batch = _lookup(request, job_id)
    return _refresh(job, batch.progress)

@router.post("/ingest/{job_id}/pause", response_model=UploadJob, summary="Stop starting new parts; running parts finish")
def pause_ingest(job_id: str, request: Request):
    job, batch = _lookup(request, job_id)
    batch.pause()
    logger.info(f"Paused upload job {job_id}")
    return _refresh(job, batch.progress)

@router.post("/ingest/{job_id}/resume", response_model=UploadJob, summary="Resume starting queued parts")
def resume_ingest(job_id: str, request: Request):
    job, batch = _lookup(request, job_id)
    batch.resume()
    logger.info(f"Resumed upload job {job_id}")
    return _refresh(job, batch.progress)
