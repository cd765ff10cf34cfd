from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

JobStatus = Literal["queued", "processing", "completed", "failed"]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class JobPayload(BaseModel):
    """Queue message body; mirrors the multipart upload's file record."""

    filename: str
    path: str
    destination: str


class UploadedFile(BaseModel):
    id: str  # stored file name, unique per upload
    original_name: str
    storage_path: str
    destination: str
    uploaded_at: datetime = Field(default_factory=utc_now)

    def to_payload(self) -> JobPayload:
        return JobPayload(
            filename=self.original_name,
            path=self.storage_path,
            destination=self.destination,
        )


class IngestionJob(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(alias="jobId")
    document_id: str = Field(alias="documentId")
    payload: JobPayload
    status: JobStatus = "queued"
    attempts: int = 0
    max_attempts: int = Field(default=3, alias="maxAttempts")
    last_error: str | None = Field(default=None, alias="lastError")
    dead_lettered: bool = Field(default=False, alias="deadLettered")
    chunks_indexed: int | None = Field(default=None, alias="chunksIndexed")
    created_at: datetime = Field(default_factory=utc_now, alias="createdAt")
    updated_at: datetime = Field(default_factory=utc_now, alias="updatedAt")
    # Epoch seconds before which the job must not be leased again.
    available_at: float = Field(default=0.0, alias="availableAt")
    # Epoch seconds when the job completed; drives record retention.
    finished_at: float | None = Field(default=None, alias="finishedAt")


class UploadAccepted(BaseModel):
    """Upload acknowledgement.

    Ingestion runs asynchronously after this response; poll /jobs/{jobId}
    to learn when the document becomes queryable.
    """

    model_config = ConfigDict(populate_by_name=True)

    message: Literal["uploaded"] = "uploaded"
    job_id: str = Field(alias="jobId")


class DeadLetterList(BaseModel):
    jobs: list[IngestionJob]
    count: int
