"""Best-effort page numbers for chunks that lack page metadata."""

from __future__ import annotations

import logging
from enum import Enum
from typing import List, Sequence

from pagesync.models import Chunk

LOGGER = logging.getLogger(__name__)

# Placeholder density for documents with neither page metadata nor a declared
# page count. It is not derived from real page sizes.
DEFAULT_CHUNKS_PER_PAGE = 3


class EstimationMode(str, Enum):
    METADATA = "metadata"
    PROPORTIONAL = "proportional"
    FIXED_DENSITY = "fixed_density"


def has_page_metadata(chunks: Sequence[Chunk]) -> bool:
    """True when at least one chunk carries a page number."""
    return any(chunk.has_page for chunk in chunks)


class PageEstimator:
    """Resolves the display page of every chunk in a document.

    The decision is taken once per document: either every chunk keeps its
    stored page, or every chunk is estimated. Mixing both would produce page
    numbers that are not monotonic in chunk order.
    """

    def __init__(self, chunks_per_page: int = DEFAULT_CHUNKS_PER_PAGE) -> None:
        if chunks_per_page < 1:
            raise ValueError("chunks_per_page must be at least 1")
        self.chunks_per_page = chunks_per_page

    def mode(self, chunks: Sequence[Chunk], total_pages: int) -> EstimationMode:
        if has_page_metadata(chunks):
            return EstimationMode.METADATA
        if total_pages > 0:
            return EstimationMode.PROPORTIONAL
        return EstimationMode.FIXED_DENSITY

    def estimate(self, chunks: Sequence[Chunk], total_pages: int, index: int) -> int:
        """Page of ``chunks[index]``.

        Chunks without a page in a document that otherwise has metadata
        resolve to 0 and end up in the unpaged group.
        """
        if not 0 <= index < len(chunks):
            raise IndexError(f"chunk index {index} out of range for {len(chunks)} chunks")
        return self._page_for(self.mode(chunks, total_pages), chunks, total_pages, index)

    def resolve(self, chunks: Sequence[Chunk], total_pages: int) -> List[int]:
        """Pages for all chunks, in chunk order."""
        if not chunks:
            return []
        mode = self.mode(chunks, total_pages)
        LOGGER.debug(
            "Resolving pages for %d chunks (declared pages: %d, mode: %s)",
            len(chunks),
            total_pages,
            mode.value,
        )
        return [
            self._page_for(mode, chunks, total_pages, index) for index in range(len(chunks))
        ]

    def _page_for(
        self,
        mode: EstimationMode,
        chunks: Sequence[Chunk],
        total_pages: int,
        index: int,
    ) -> int:
        if mode is EstimationMode.METADATA:
            page = chunks[index].page or 0
            return page if page > 0 else 0

        count = len(chunks)
        if mode is EstimationMode.PROPORTIONAL and count > 0:
            # floor(index / count * total_pages) + 1 in integer arithmetic
            page = index * total_pages // count + 1
            return min(max(page, 1), total_pages)

        return index // self.chunks_per_page + 1
