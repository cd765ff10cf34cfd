"""Pinecone upsert/search logic."""

from __future__ import annotations

from typing import Protocol

from pinecone import Pinecone
from pinecone.exceptions import PineconeException
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)
from urllib3.exceptions import HTTPError as TransportError

from pdfchat.core.errors import RetrievalError, VectorIndexError
from pdfchat.core.logging import get_logger
from pdfchat.models.chat import Chunk, ScoredChunk

logger = get_logger(__name__)

UPSERT_BATCH_SIZE = 100

INDEX_ERRORS = (PineconeException, ConnectionError, TransportError)


class VectorIndex(Protocol):
    def upsert(self, entries: list[tuple[Chunk, list[float]]]) -> int:
        """Insert or replace one entry per chunk, keyed by chunk identity."""
        ...

    def query(self, vector: list[float], top_k: int) -> list[ScoredChunk]:
        """Return up to ``top_k`` chunks ordered by descending similarity."""
        ...


class PineconeVectorIndex:
    """Vector index over one Pinecone index/namespace pair."""

    def __init__(
        self,
        api_key: str,
        index_name: str,
        *,
        namespace: str,
        host: str | None = None,
    ) -> None:
        self.index_name = index_name
        self.namespace = namespace
        self._pc = Pinecone(api_key=api_key)
        self._index = self._pc.Index(host=host) if host else self._pc.Index(index_name)

    def check_compatible(self, dimensions: int) -> None:
        """Verify the index is reachable, cosine, and sized for the embedding model.

        Raises:
            VectorIndexError: if the index cannot be described or does not match.
        """
        try:
            description = self._pc.describe_index(self.index_name)
        except INDEX_ERRORS as exc:
            raise VectorIndexError(
                f"Cannot describe Pinecone index '{self.index_name}': {exc}"
            ) from exc

        if description.dimension != dimensions:
            raise VectorIndexError(
                f"Pinecone index '{self.index_name}' has dimension {description.dimension}, "
                f"but embeddings have {dimensions}."
            )
        metric = str(getattr(description.metric, "value", description.metric)).lower()
        if metric != "cosine":
            raise VectorIndexError(
                f"Pinecone index '{self.index_name}' uses metric '{metric}', expected 'cosine'."
            )
        logger.info(
            "Pinecone index '%s' ready (dimension=%d, metric=cosine)", self.index_name, dimensions
        )

    @retry(
        retry=retry_if_exception_type(INDEX_ERRORS),
        stop=stop_after_attempt(5),
        wait=wait_exponential_jitter(initial=1, max=30),
        reraise=True,
    )
    def _upsert_batch(self, batch: list[dict]) -> None:
        self._index.upsert(vectors=batch, namespace=self.namespace)

    def upsert(self, entries: list[tuple[Chunk, list[float]]]) -> int:
        """Upsert (chunk, vector) pairs in batches with retry logic.

        Returns:
            Total count of upserted vectors

        Raises:
            VectorIndexError: If a batch still fails after all retries
        """
        if not entries:
            return 0

        vectors = [
            {"id": chunk.chunk_id, "values": vector, "metadata": chunk.to_metadata()}
            for chunk, vector in entries
        ]
        logger.info(
            "Upserting %d vectors to index '%s' namespace '%s'",
            len(vectors),
            self.index_name,
            self.namespace,
        )

        total_upserted = 0
        num_batches = (len(vectors) + UPSERT_BATCH_SIZE - 1) // UPSERT_BATCH_SIZE
        for i in range(0, len(vectors), UPSERT_BATCH_SIZE):
            batch = vectors[i : i + UPSERT_BATCH_SIZE]
            try:
                self._upsert_batch(batch)
            except INDEX_ERRORS as exc:
                raise VectorIndexError(f"{type(exc).__name__}: {exc}") from exc
            total_upserted += len(batch)
            logger.debug(
                "Upserted batch %d/%d (%d vectors)",
                i // UPSERT_BATCH_SIZE + 1,
                num_batches,
                len(batch),
            )

        logger.info("Successfully upserted %d vectors", total_upserted)
        return total_upserted

    def query(self, vector: list[float], top_k: int) -> list[ScoredChunk]:
        try:
            resp = self._index.query(
                vector=vector,
                top_k=top_k,
                namespace=self.namespace,
                include_metadata=True,
            )
        except INDEX_ERRORS as exc:
            raise RetrievalError(f"{type(exc).__name__}: {exc}") from exc

        results = [
            ScoredChunk(chunk=Chunk.from_metadata(match.metadata or {}), score=match.score or 0.0)
            for match in resp.matches or []
        ]
        results.sort(key=lambda r: r.score, reverse=True)
        return results
