"""Fixed-window character splitter with overlap."""

from __future__ import annotations

from collections.abc import Sequence

from pdfchat.models.chat import Chunk


def window_ranges(length: int, chunk_size: int, chunk_overlap: int) -> list[tuple[int, int]]:
    """Compute (start, end) character ranges covering ``length`` characters.

    Each window after the first starts ``chunk_overlap`` characters before the
    previous window's end.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive.")
    if not 0 <= chunk_overlap < chunk_size:
        raise ValueError("chunk_overlap must be >= 0 and smaller than chunk_size.")

    ranges: list[tuple[int, int]] = []
    start = 0
    while start < length:
        end = min(start + chunk_size, length)
        ranges.append((start, end))
        if end >= length:
            break
        start = end - chunk_overlap
    return ranges


def split_pages(
    pages: Sequence[str],
    *,
    document_id: str,
    source: str,
    chunk_size: int,
    chunk_overlap: int,
) -> list[Chunk]:
    """Split per-page text into ordered, overlapping chunks.

    Windows never cross a page boundary, so every chunk belongs to exactly one
    page. Blank pages and whitespace-only windows produce nothing; sequence
    indices are assigned contiguously over the chunks that remain.
    """
    chunks: list[Chunk] = []
    for page_number, text in enumerate(pages, start=1):
        if not text or not text.strip():
            continue
        for start, end in window_ranges(len(text), chunk_size, chunk_overlap):
            window = text[start:end]
            if not window.strip():
                continue
            chunks.append(
                Chunk(
                    text=window,
                    source_document_id=document_id,
                    source=source,
                    page_number=page_number,
                    sequence_index=len(chunks),
                )
            )
    return chunks
