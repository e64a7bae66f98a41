"""PDF loading and chunking utilities.

Uses PyMuPDF (fitz) for text extraction. Chunks never straddle a page
boundary so every chunk can carry the page it came from.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Iterator, Tuple

import fitz  # PyMuPDF

from pagesync.models import Chunk
from pagesync.utils.text import chunk_text, extract_keywords, normalize_whitespace

LOGGER = logging.getLogger(__name__)


def iter_page_texts(path: Path) -> Iterator[Tuple[int, str]]:
    """Yield ``(page_number, text)`` for every page with text, 1-based."""
    try:
        doc = fitz.open(path)
    except Exception as exc:
        LOGGER.error("Failed to open PDF %s: %s", path, exc)
        return

    try:
        for index in range(len(doc)):
            try:
                text = doc[index].get_text() or ""
            except Exception as exc:  # pragma: no cover
                LOGGER.warning("Failed to read page %s in %s: %s", index + 1, path, exc)
                continue
            normalized = normalize_whitespace(text.splitlines())
            if normalized:
                yield index + 1, normalized
    finally:
        doc.close()


def get_pdf_metadata(path: Path) -> Dict[str, Any]:
    """Title and page count of a PDF file."""
    doc = fitz.open(path)
    try:
        metadata = doc.metadata or {}
        return {
            "title": metadata.get("title") or path.stem,
            "page_count": len(doc),
        }
    finally:
        doc.close()


def build_chunks(
    path: Path,
    document_id: str,
    *,
    max_chars: int = 1200,
    overlap: int = 200,
    keep_pages: bool = True,
) -> Iterator[Chunk]:
    """Produce ordered chunks for a PDF lazily.

    With ``keep_pages=False`` the page metadata is dropped, the way many
    upstream chunkers store it, and pages are estimated at display time.
    """
    position = 0
    for page, text in iter_page_texts(path):
        for piece in chunk_text(text, max_chars=max_chars, overlap=overlap):
            yield Chunk(
                id=f"{document_id}-{position:05d}",
                document_id=document_id,
                content=piece,
                page=page if keep_pages else None,
                position=position,
                keywords=tuple(extract_keywords(piece)),
            )
            position += 1
