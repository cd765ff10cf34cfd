from __future__ import annotations

import hashlib
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


def chunk_identity(document_id: str, sequence_index: int) -> str:
    """Stable vector id for a chunk; redelivered jobs overwrite the same ids."""
    return hashlib.md5(f"{document_id}:{sequence_index}".encode()).hexdigest()


class Chunk(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    source_document_id: str
    source: str
    page_number: int
    sequence_index: int

    @property
    def chunk_id(self) -> str:
        return chunk_identity(self.source_document_id, self.sequence_index)

    def to_metadata(self) -> dict:
        """Payload stored next to the vector in the index."""
        return {
            "text": self.text,
            "document_id": self.source_document_id,
            "source": self.source,
            "page_number": self.page_number,
            "sequence_index": self.sequence_index,
        }

    @classmethod
    def from_metadata(cls, metadata: dict) -> "Chunk":
        return cls(
            text=str(metadata.get("text", "")),
            source_document_id=str(metadata.get("document_id", "")),
            source=str(metadata.get("source", "")),
            page_number=int(metadata.get("page_number", 1)),
            sequence_index=int(metadata.get("sequence_index", 0)),
        )


class ScoredChunk(BaseModel):
    chunk: Chunk
    score: float


class DocLocation(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    page_number: int = Field(alias="pageNumber")


class DocMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    loc: DocLocation
    source: str
    document_id: str = Field(alias="documentId")
    sequence_index: int = Field(alias="sequenceIndex")


class RetrievedDoc(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    page_content: str = Field(alias="pageContent")
    metadata: DocMetadata

    @classmethod
    def from_chunk(cls, chunk: Chunk) -> "RetrievedDoc":
        return cls(
            page_content=chunk.text,
            metadata=DocMetadata(
                loc=DocLocation(page_number=chunk.page_number),
                source=chunk.source,
                document_id=chunk.source_document_id,
                sequence_index=chunk.sequence_index,
            ),
        )


class ChatTurn(BaseModel):
    """One exchange in a client-held conversation; never persisted server-side."""

    model_config = ConfigDict(populate_by_name=True)

    role: Literal["user", "assistant"]
    content: str
    supporting_chunks: list[RetrievedDoc] = Field(default_factory=list, alias="supportingChunks")


class ChatRequest(BaseModel):
    message: str
    history: list[ChatTurn] = Field(default_factory=list)


class ChatResponse(BaseModel):
    message: str
    docs: list[RetrievedDoc]
