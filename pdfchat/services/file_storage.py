"""File storage for uploaded documents."""

from __future__ import annotations

import os
import random
import time
from pathlib import Path
from typing import BinaryIO

from pdfchat.core.errors import UploadValidationError
from pdfchat.core.logging import get_logger
from pdfchat.models.ingest import UploadedFile
from pdfchat.services.pdf_loader import PDF_CONTENT_TYPES, PDF_EXTENSION, PDF_MAGIC

logger = get_logger(__name__)

COPY_BUFFER_SIZE = 1024 * 1024


def stored_name(original_name: str) -> str:
    """Collision-resistant file name: <timestamp>-<random>-<originalName>."""
    suffix = f"{int(time.time() * 1000)}-{random.randint(0, 10**9)}"
    return f"{suffix}-{Path(original_name).name}"


class FileStorage:
    """Writes uploads under a single directory before they are queued."""

    def __init__(self, upload_dir: str, *, max_bytes: int) -> None:
        self.upload_dir = Path(upload_dir)
        self.max_bytes = max_bytes
        self.upload_dir.mkdir(parents=True, exist_ok=True)

    def save(self, original_name: str, stream: BinaryIO) -> UploadedFile:
        """Copy ``stream`` to stable storage and fsync it.

        Raises:
            UploadValidationError: if the stream exceeds ``max_bytes``
                (partial data is removed).
        """
        name = stored_name(original_name)
        path = self.upload_dir / name
        written = 0
        try:
            with open(path, "wb") as dest:
                while True:
                    block = stream.read(COPY_BUFFER_SIZE)
                    if not block:
                        break
                    written += len(block)
                    if written > self.max_bytes:
                        raise UploadValidationError(
                            f"File exceeds the {self.max_bytes} byte upload limit.",
                            status_code=413,
                        )
                    dest.write(block)
                dest.flush()
                os.fsync(dest.fileno())
        except BaseException:
            path.unlink(missing_ok=True)
            raise

        logger.info("Stored upload '%s' as %s (%d bytes)", original_name, path, written)
        return UploadedFile(
            id=name,
            original_name=Path(original_name).name,
            storage_path=str(path),
            destination=str(self.upload_dir),
        )

    def remove(self, uploaded: UploadedFile) -> None:
        """Delete a stored upload that never made it onto the queue."""
        Path(uploaded.storage_path).unlink(missing_ok=True)


def validate_pdf_upload(filename: str | None, content_type: str | None, head: bytes) -> None:
    """Reject anything that is not a PDF before it is stored or queued.

    Args:
        filename: client-supplied file name
        content_type: multipart part content type
        head: first bytes of the upload
    """
    if not filename or not filename.strip():
        raise UploadValidationError("Filename is required.")

    ext = Path(filename).suffix.lower()
    if ext != PDF_EXTENSION:
        raise UploadValidationError(f"Unsupported file type '{ext or filename}'. Only PDF is accepted.")

    if content_type and content_type.split(";")[0].strip().lower() not in PDF_CONTENT_TYPES:
        raise UploadValidationError(f"Unsupported content type '{content_type}'.")

    if not head:
        raise UploadValidationError("Uploaded file is empty.")
    if not head.startswith(PDF_MAGIC):
        raise UploadValidationError("Uploaded file is not a valid PDF.")
