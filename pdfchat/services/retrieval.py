"""Query-time retrieval and grounded answer generation."""

from __future__ import annotations

import json

from pdfchat.core.logging import get_logger
from pdfchat.models.chat import ChatResponse, ChatTurn, RetrievedDoc
from pdfchat.services.embedder import EmbeddingProvider
from pdfchat.services.llm import LanguageModel
from pdfchat.services.vectordb import VectorIndex

logger = get_logger(__name__)

SYSTEM_PROMPT = """You are a helpful AI Assistant who answers the user query based only on the available context from PDF files.
If the context is empty or does not contain the answer, reply that no relevant information was found in the uploaded documents.

Context:
{context}"""


class QueryService:
    def __init__(
        self,
        embedder: EmbeddingProvider,
        index: VectorIndex,
        llm: LanguageModel,
        *,
        top_k: int = 2,
    ) -> None:
        self.embedder = embedder
        self.index = index
        self.llm = llm
        self.top_k = top_k

    def retrieve(self, message: str) -> list[RetrievedDoc]:
        """Top-k supporting docs for a query, best match first.

        Raises:
            EmbeddingError: query could not be embedded.
            RetrievalError: vector index unreachable.
        """
        vector = self.embedder.embed([message])[0]
        results = self.index.query(vector, self.top_k)

        docs: list[RetrievedDoc] = []
        seen: set[str] = set()
        for result in results:
            # Redelivered jobs overwrite by id, but tolerate stray duplicates anyway.
            if result.chunk.chunk_id in seen:
                continue
            seen.add(result.chunk.chunk_id)
            docs.append(RetrievedDoc.from_chunk(result.chunk))
        return docs

    def answer(self, message: str, history: list[ChatTurn] | None = None) -> ChatResponse:
        message = message.strip()
        if not message:
            raise ValueError("Query message must not be empty.")

        docs = self.retrieve(message)
        logger.info("Retrieved %d docs for query", len(docs))

        context = json.dumps([doc.model_dump(by_alias=True) for doc in docs], ensure_ascii=False)
        messages = [{"role": "system", "content": SYSTEM_PROMPT.format(context=context)}]
        for turn in history or []:
            messages.append({"role": turn.role, "content": turn.content})
        messages.append({"role": "user", "content": message})

        reply = self.llm.complete(messages)
        return ChatResponse(message=reply, docs=docs)
