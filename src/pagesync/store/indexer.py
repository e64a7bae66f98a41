"""Document ingestion pipeline."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

from pagesync.ingestion.pdf_loader import build_chunks, get_pdf_metadata
from pagesync.models import DocumentInfo
from pagesync.store.storage import SQLiteChunkStore
from pagesync.utils.files import compute_sha256, document_id_for, iter_pdf_paths

LOGGER = logging.getLogger(__name__)


def find_pdfs(paths: Sequence[Path]) -> list[Path]:
    """Find all PDF files under the given paths."""
    return list(iter_pdf_paths(paths))


@dataclass(slots=True)
class IndexStats:
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    processed_files: list[Path] = field(default_factory=list)

    def increment(self, status: str, path: Path) -> None:
        if status == "inserted":
            self.inserted += 1
        elif status == "updated":
            self.updated += 1
        elif status == "skipped":
            self.skipped += 1
        else:
            self.failed += 1
        self.processed_files.append(path)


class Indexer:
    """Extracts chunks from PDFs and stores them."""

    def __init__(
        self,
        store: SQLiteChunkStore,
        *,
        chunk_chars: int = 1200,
        overlap: int = 200,
        keep_pages: bool = True,
    ) -> None:
        self.store = store
        self.chunk_chars = chunk_chars
        self.overlap = overlap
        self.keep_pages = keep_pages

    def index(self, paths: Sequence[Path]) -> IndexStats:
        """Index all PDFs found under the given paths."""
        pdf_files = find_pdfs(paths)
        if not pdf_files:
            LOGGER.warning("No PDF files found")
            return IndexStats()

        stats = IndexStats()
        for path in pdf_files:
            try:
                LOGGER.info("Processing: %s", path)
                stats.increment(self._index_single(path), path)
            except Exception as exc:
                LOGGER.error("Failed to process %s: %s", path, exc)
                stats.increment("failed", path)
        return stats

    def _index_single(self, path: Path) -> str:
        sha256 = compute_sha256(path)
        document_id = document_id_for(sha256)
        meta = get_pdf_metadata(path)

        chunks = list(
            build_chunks(
                path,
                document_id,
                max_chars=self.chunk_chars,
                overlap=self.overlap,
                keep_pages=self.keep_pages,
            )
        )
        if not chunks:
            LOGGER.warning("No text extracted from %s", path)
            return "skipped"

        stat = path.stat()
        document = DocumentInfo(
            id=document_id,
            title=meta.get("title") or path.stem,
            total_pages=int(meta.get("page_count") or 0),
            filename=path.name,
        )
        status = self.store.upsert_document(
            document,
            chunks,
            path=path,
            sha256=sha256,
            mtime=stat.st_mtime,
            size=stat.st_size,
        )
        LOGGER.info(
            "%s: %d chunks, %d pages (%s)", path.name, len(chunks), document.total_pages, status
        )
        return status
