"""Cyclic full-text search over a document's chunks."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Sequence

from pagesync.models import Chunk
from pagesync.sync.coordinator import SyncCoordinator

LOGGER = logging.getLogger(__name__)


def normalize_query(query: str | None) -> str:
    return (query or "").strip().lower()


def find_matches(chunks: Sequence[Chunk], query: str) -> List[Chunk]:
    """Chunks whose content contains ``query``, case-insensitively, in order."""
    needle = normalize_query(query)
    if not needle:
        return []
    return [chunk for chunk in chunks if needle in (chunk.content or "").lower()]


@dataclass(slots=True)
class SearchSession:
    query: str = ""
    matches: List[Chunk] = field(default_factory=list)
    cursor: int = -1

    @property
    def current(self) -> Chunk | None:
        if 0 <= self.cursor < len(self.matches):
            return self.matches[self.cursor]
        return None

    @property
    def label(self) -> str:
        if not self.matches:
            return ""
        return f"{self.cursor + 1}/{len(self.matches)}"


class SearchNavigator:
    """Finds matching chunks and walks them cyclically, one per submission."""

    def __init__(self, coordinator: SyncCoordinator) -> None:
        self.coordinator = coordinator
        self.session = SearchSession()
        self._chunks: List[Chunk] = []

    def set_chunks(self, chunks: Sequence[Chunk]) -> None:
        self._chunks = list(chunks)
        self.reset()

    def reset(self) -> None:
        self.session = SearchSession()

    def on_query_changed(self, text: str | None) -> None:
        """Editing the box down to nothing discards the session."""
        if not normalize_query(text):
            self.reset()

    def submit(self, query: str | None) -> Chunk | None:
        """Run or continue a search and navigate to the resulting match."""
        needle = normalize_query(query)
        if not needle:
            self.reset()
            return None
        if not self._chunks:
            return None

        if needle != self.session.query:
            matches = find_matches(self._chunks, needle)
            self.session = SearchSession(
                query=needle, matches=matches, cursor=0 if matches else -1
            )
            LOGGER.debug("Query %r matched %d chunks", needle, len(matches))
        elif self.session.matches:
            self.session.cursor = (self.session.cursor + 1) % len(self.session.matches)

        match = self.session.current
        if match is None:
            return None
        LOGGER.debug("Search match %s -> chunk %s", self.session.label, match.id)
        self.coordinator.request_from_search(match)
        return match
