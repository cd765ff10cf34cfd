"""Error taxonomy shared by the ingestion pipeline and the query path."""


class PipelineError(Exception):
    """Base class for all pipeline failures."""


class LoadError(PipelineError):
    """Stored file is missing, unreadable or not a parseable PDF."""


class EmbeddingError(PipelineError):
    """Embedding provider failed or timed out after retries."""


class VectorIndexError(PipelineError):
    """Vector index unavailable or rejected a write."""


class RetrievalError(PipelineError):
    """Vector index could not be queried at request time."""


class CompletionError(PipelineError):
    """Language model call failed at request time."""


class UploadValidationError(PipelineError, ValueError):
    """Upload rejected before anything was queued."""

    def __init__(self, message: str, *, status_code: int = 400) -> None:
        super().__init__(message)
        self.status_code = status_code


class JobNotFoundError(PipelineError, KeyError):
    """No job record exists for the given id."""

    def __str__(self) -> str:
        return f"Job not found: {self.args[0]}" if self.args else "Job not found."


class JobStateError(PipelineError):
    """Requested transition is not valid for the job's current state."""
