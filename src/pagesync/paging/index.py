"""Chunk to page partition and its query surface."""

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Sequence

from pagesync.models import Chunk, PageGroup
from pagesync.paging.estimator import EstimationMode, PageEstimator


class Direction(str, Enum):
    PREV = "prev"
    NEXT = "next"


class ChunkPageIndex:
    """Immutable grouping of a document's chunks by resolved page.

    Build a new index whenever the chunk list or the declared page count
    changes; nothing here mutates session state.
    """

    def __init__(
        self,
        groups: Dict[int, List[Chunk]],
        *,
        declared_total: int = 0,
        mode: EstimationMode = EstimationMode.METADATA,
    ) -> None:
        self._groups = {page: list(chunks) for page, chunks in groups.items() if chunks}
        self._page_of = {
            chunk.id: page for page, chunks in self._groups.items() for chunk in chunks
        }
        self.declared_total = max(declared_total, 0)
        self.mode = mode

    @classmethod
    def build(
        cls,
        chunks: Sequence[Chunk],
        total_pages: int = 0,
        estimator: PageEstimator | None = None,
    ) -> "ChunkPageIndex":
        estimator = estimator or PageEstimator()
        pages = estimator.resolve(chunks, total_pages)
        groups: Dict[int, List[Chunk]] = {}
        for chunk, page in zip(chunks, pages):
            groups.setdefault(page, []).append(chunk)
        return cls(groups, declared_total=total_pages, mode=estimator.mode(chunks, total_pages))

    @classmethod
    def empty(cls) -> "ChunkPageIndex":
        return cls({})

    def __len__(self) -> int:
        return len(self._page_of)

    def __contains__(self, page: object) -> bool:
        return page in self._groups

    @property
    def is_empty(self) -> bool:
        return not self._groups

    @property
    def page_numbers(self) -> List[int]:
        return sorted(self._groups)

    @property
    def max_observed_page(self) -> int:
        return max(self._groups, default=0)

    @property
    def max_page(self) -> int:
        """Upper page bound for navigation.

        Estimation can under- or overshoot the declared count, so the larger
        of the two wins.
        """
        return max(self.max_observed_page, self.declared_total)

    @property
    def total_pages(self) -> int:
        """Page count shown to the user: declared count first, then observed."""
        return self.declared_total if self.declared_total > 0 else self.max_page

    def groups(self) -> List[PageGroup]:
        return [PageGroup(page, list(self._groups[page])) for page in self.page_numbers]

    def chunks_for(self, page: int) -> List[Chunk]:
        return list(self._groups.get(page, ()))

    def first_chunk(self, page: int) -> Chunk | None:
        chunks = self._groups.get(page)
        return chunks[0] if chunks else None

    def page_of(self, chunk_id: str) -> int | None:
        return self._page_of.get(chunk_id)

    def clamp(self, page: int) -> int:
        return min(max(page, 1), max(self.max_page, 1))

    def nearest_page(self, start: int, direction: Direction) -> int:
        """Closest page with chunks from ``start`` towards ``direction``.

        Returns ``start`` itself when it has chunks or when nothing is found.
        """
        if start in self._groups:
            return start
        if direction is Direction.NEXT:
            candidates = range(start + 1, self.max_page + 1)
        else:
            candidates = range(start - 1, 0, -1)
        for page in candidates:
            if page in self._groups:
                return page
        return start
