"""PDF text extraction with Docling, one string per page."""

from __future__ import annotations

import os
from collections import defaultdict

from pdfchat.core.errors import LoadError
from pdfchat.core.logging import get_logger

logger = get_logger(__name__)

PDF_EXTENSION = ".pdf"
PDF_CONTENT_TYPES = {"application/pdf", "application/x-pdf"}
PDF_MAGIC = b"%PDF-"


def load_pdf_pages(path: str) -> list[str]:
    """Extract text per page from a stored PDF.

    Returns a list indexed by page order (page 1 first). Pages without text
    are returned as empty strings so page numbers stay aligned.

    Raises:
        LoadError: if the file is missing, not a PDF, or cannot be converted.
    """
    if not os.path.isfile(path):
        raise LoadError(f"File does not exist: {path}")

    ext = os.path.splitext(path)[1].lower()
    if ext != PDF_EXTENSION:
        raise LoadError(f"Unsupported file type '{ext}'.")

    try:
        with open(path, "rb") as f:
            header = f.read(len(PDF_MAGIC))
    except OSError as exc:
        raise LoadError(f"Cannot read {path}: {exc}") from exc
    if header != PDF_MAGIC:
        raise LoadError(f"Not a PDF document: {path}")

    from docling.document_converter import DocumentConverter

    logger.debug("Converting document: %s", path)
    try:
        result = DocumentConverter().convert(path)
    except Exception as exc:
        raise LoadError(f"Failed to parse PDF {path}: {exc}") from exc

    return _pages_from_document(result.document)


def _pages_from_document(doc) -> list[str]:
    """Group the document's text items by their provenance page."""
    texts_by_page: dict[int, list[str]] = defaultdict(list)
    for item, _level in doc.iterate_items():
        text = getattr(item, "text", None)
        if not text:
            continue
        prov = getattr(item, "prov", None) or []
        page_no = prov[0].page_no if prov else 1
        texts_by_page[page_no].append(text)

    page_count = max([len(doc.pages), *texts_by_page.keys()], default=0)
    pages = ["\n".join(texts_by_page.get(n, [])) for n in range(1, page_count + 1)]
    logger.debug("Extracted %d pages", len(pages))
    return pages
