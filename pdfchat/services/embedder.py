"""OpenAI embedding calls with batching and retry logic."""

from __future__ import annotations

from typing import Protocol

from openai import (
    APIConnectionError,
    APIError,
    APITimeoutError,
    InternalServerError,
    OpenAI,
    RateLimitError,
)
from tenacity import (
    retry,
    retry_if_exception_type,
    wait_exponential_jitter,
)

from pdfchat.core.errors import EmbeddingError
from pdfchat.core.logging import get_logger

logger = get_logger(__name__)

# Batch size for embedding requests (OpenAI allows up to 2048 texts per request)
EMBEDDING_BATCH_SIZE = 64

TRANSIENT_ERRORS = (RateLimitError, APITimeoutError, APIConnectionError, InternalServerError)

# Attempts per embedding batch.
INGEST_EMBED_ATTEMPTS = 5
QUERY_EMBED_ATTEMPTS = 2


def _attempts_exhausted(retry_state) -> bool:
    return retry_state.attempt_number >= retry_state.args[0].max_attempts


class EmbeddingProvider(Protocol):
    dimensions: int

    def embed(self, texts: list[str]) -> list[list[float]]:
        """Return one vector per input text, in input order."""
        ...


class OpenAIEmbedder:
    """Embedding provider backed by the OpenAI embeddings endpoint."""

    def __init__(
        self,
        api_key: str,
        *,
        model: str = "text-embedding-3-small",
        dimensions: int = 1536,
        batch_size: int = EMBEDDING_BATCH_SIZE,
        timeout: float = 30.0,
        max_attempts: int = INGEST_EMBED_ATTEMPTS,
    ) -> None:
        self.model = model
        self.dimensions = dimensions
        self.batch_size = batch_size
        self.max_attempts = max_attempts
        self._client = OpenAI(api_key=api_key, timeout=timeout, max_retries=0)

    def close(self) -> None:
        self._client.close()

    @retry(
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        stop=_attempts_exhausted,
        wait=wait_exponential_jitter(initial=1, max=30, jitter=2),
        reraise=True,
    )
    def _embed_batch(self, texts: list[str]) -> list[list[float]]:
        resp = self._client.embeddings.create(model=self.model, input=texts)
        ordered = sorted(resp.data, key=lambda item: item.index)
        return [item.embedding for item in ordered]

    def embed(self, texts: list[str]) -> list[list[float]]:
        """Embed texts in batches; each batch retries transient provider errors.

        Raises:
            EmbeddingError: if a batch still fails after retries, or the
                provider returns vectors of the wrong count or size.
        """
        if not texts:
            return []
        if any(not isinstance(text, str) or not text.strip() for text in texts):
            raise EmbeddingError("All texts must be non-empty strings for embedding.")

        vectors: list[list[float]] = []
        for i in range(0, len(texts), self.batch_size):
            batch = texts[i : i + self.batch_size]
            try:
                batch_vectors = self._embed_batch(batch)
            except APIError as exc:
                raise EmbeddingError(f"{type(exc).__name__}: {exc}") from exc
            if len(batch_vectors) != len(batch):
                raise EmbeddingError(
                    f"Embedding count mismatch: expected {len(batch)} vectors, "
                    f"got {len(batch_vectors)}."
                )
            vectors.extend(batch_vectors)
            logger.debug(
                "Embedded batch %d/%d (%d texts)",
                i // self.batch_size + 1,
                (len(texts) + self.batch_size - 1) // self.batch_size,
                len(batch),
            )

        bad = next((v for v in vectors if len(v) != self.dimensions), None)
        if bad is not None:
            raise EmbeddingError(
                f"Embedding size {len(bad)} does not match configured dimensions {self.dimensions}."
            )
        return vectors
