from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status

from pdfchat.api.deps import get_file_storage, get_job_queue
from pdfchat.core.errors import UploadValidationError
from pdfchat.core.logging import get_logger
from pdfchat.models.ingest import UploadAccepted
from pdfchat.services.file_storage import FileStorage, validate_pdf_upload
from pdfchat.services.job_queue import JobQueue
from pdfchat.services.pdf_loader import PDF_MAGIC

logger = get_logger(__name__)

router = APIRouter(tags=["ingestion"])


@router.post("/upload/pdf", response_model=UploadAccepted)
def upload_pdf(
    pdf: UploadFile | None = File(None),
    storage: FileStorage = Depends(get_file_storage),
    queue: JobQueue = Depends(get_job_queue),
) -> UploadAccepted:
    """Store one PDF and queue it for ingestion.

    Returns as soon as the job is durably queued. Indexing happens later;
    the document is not guaranteed to be queryable when this responds.
    Use GET /jobs/{jobId} to follow progress.
    """
    if pdf is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Multipart field 'pdf' is required.",
        )

    try:
        head = pdf.file.read(len(PDF_MAGIC))
        pdf.file.seek(0)
        validate_pdf_upload(pdf.filename, pdf.content_type, head)
        uploaded = storage.save(pdf.filename or "upload.pdf", pdf.file)
    except UploadValidationError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc

    try:
        job_id = queue.enqueue(uploaded.to_payload(), document_id=uploaded.id)
    except OSError as exc:
        storage.remove(uploaded)
        logger.error("Could not enqueue %s: %s", uploaded.storage_path, exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Job queue unavailable.",
        ) from exc

    return UploadAccepted(job_id=job_id)
