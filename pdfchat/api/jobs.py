import uuid

from fastapi import APIRouter, Depends, HTTPException, status

from pdfchat.api.deps import get_job_queue
from pdfchat.core.errors import JobNotFoundError, JobStateError
from pdfchat.models.ingest import DeadLetterList, IngestionJob
from pdfchat.services.job_queue import JobQueue

router = APIRouter(prefix="/jobs", tags=["jobs"])


def validate_job_id(job_id: str) -> None:
    try:
        uuid.UUID(job_id)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid job id.",
        ) from exc


@router.get("/dead-letter", response_model=DeadLetterList)
def list_dead_letters(queue: JobQueue = Depends(get_job_queue)) -> DeadLetterList:
    """Jobs that exhausted their retries and need operator attention."""
    jobs = queue.dead_letters()
    return DeadLetterList(jobs=jobs, count=len(jobs))


@router.get("/{job_id}", response_model=IngestionJob)
def get_job(job_id: str, queue: JobQueue = Depends(get_job_queue)) -> IngestionJob:
    validate_job_id(job_id)
    job = queue.get(job_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found.")
    return job


@router.post("/{job_id}/retry", response_model=IngestionJob)
def retry_job(job_id: str, queue: JobQueue = Depends(get_job_queue)) -> IngestionJob:
    validate_job_id(job_id)
    try:
        return queue.retry(job_id)
    except JobNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found.") from exc
    except JobStateError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
