"""In-memory stand-ins for the embedding provider, vector index and language model."""

from __future__ import annotations

import hashlib
import math
import re
import threading

from pdfchat.core.errors import EmbeddingError, RetrievalError
from pdfchat.models.chat import Chunk, ScoredChunk

DIMENSIONS = 64


def _tokens(text: str) -> list[str]:
    return re.findall(r"[a-z0-9]+", text.lower())


class FakeEmbedder:
    """Deterministic hashed bag-of-words vectors."""

    dimensions = DIMENSIONS

    def __init__(self) -> None:
        self.calls: list[list[str]] = []

    def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        vectors = []
        for text in texts:
            vec = [0.0] * DIMENSIONS
            for token in _tokens(text):
                slot = int(hashlib.md5(token.encode()).hexdigest(), 16) % DIMENSIONS
                vec[slot] += 1.0
            norm = math.sqrt(sum(v * v for v in vec)) or 1.0
            vectors.append([v / norm for v in vec])
        return vectors


class FlakyEmbedder(FakeEmbedder):
    """Fails the first ``failures`` calls, then behaves like FakeEmbedder."""

    def __init__(self, failures: int) -> None:
        super().__init__()
        self.failures = failures

    def embed(self, texts: list[str]) -> list[list[float]]:
        if self.failures > 0:
            self.failures -= 1
            raise EmbeddingError("APITimeoutError: Request timed out.")
        return super().embed(texts)


class InMemoryVectorIndex:
    """Identity-keyed store with brute-force cosine search."""

    def __init__(self) -> None:
        self.entries: dict[str, tuple[Chunk, list[float]]] = {}
        self.upsert_calls = 0
        self.available = True
        self._lock = threading.Lock()

    def upsert(self, entries: list[tuple[Chunk, list[float]]]) -> int:
        with self._lock:
            self.upsert_calls += 1
            for chunk, vector in entries:
                self.entries[chunk.chunk_id] = (chunk, vector)
        return len(entries)

    def query(self, vector: list[float], top_k: int) -> list[ScoredChunk]:
        if not self.available:
            raise RetrievalError("ConnectionError: index unreachable")
        with self._lock:
            scored = [
                ScoredChunk(chunk=chunk, score=sum(a * b for a, b in zip(vector, stored)))
                for chunk, stored in self.entries.values()
            ]
        scored.sort(key=lambda s: s.score, reverse=True)
        return scored[:top_k]


class EchoLanguageModel:
    """Answers with the first context line that shares a word with the question."""

    def __init__(self) -> None:
        self.calls: list[list[dict[str, str]]] = []

    def complete(self, messages: list[dict[str, str]]) -> str:
        self.calls.append(messages)
        system = messages[0]["content"]
        question = set(_tokens(messages[-1]["content"]))
        if '"pageContent"' not in system:
            return "No relevant information was found in the uploaded documents."
        for sentence in re.split(r"[.\n]", system.split("Context:", 1)[1]):
            if question & set(_tokens(sentence)) - {"pagecontent", "metadata"}:
                return f"According to the document: {sentence.strip()}"
        return "No relevant information was found in the uploaded documents."
