"""Core PageSync data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Tuple


class ViewMode(str, Enum):
    """Surface currently shown in the document panel."""

    TEXT = "text"
    PDF = "pdf"


class ChangeOrigin(str, Enum):
    """Which surface asked for the most recent page change."""

    DOCUMENT = "document"
    NAVIGATION = "navigation"
    VIEWPORT = "viewport"
    SEARCH = "search"
    RENDERER = "renderer"
    REFERENCE = "reference"


@dataclass(slots=True, frozen=True)
class Chunk:
    """Stored fragment of a document's text.

    ``page`` is the stored page metadata, which may be missing or zero. The
    page a chunk is displayed on is derived by the paging package and never
    written back here.
    """

    id: str
    document_id: str
    content: str
    page: int | None = None
    section: str | None = None
    position: int = 0
    keywords: Tuple[str, ...] = ()

    @property
    def has_page(self) -> bool:
        return (self.page or 0) > 0


@dataclass(slots=True)
class DocumentInfo:
    """Declared document metadata; ``total_pages`` is 0 when unknown."""

    id: str
    title: str
    total_pages: int = 0
    filename: str | None = None


@dataclass(slots=True)
class PageGroup:
    page: int
    chunks: List[Chunk] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.chunks)


@dataclass(slots=True)
class ChunkReference:
    """Chunk cited by an answer, as handed over by the chat surface."""

    document_id: str
    chunk_id: str
    title: str = ""
    page: int | None = None
    filename: str | None = None
    content: str = ""
    keywords: Tuple[str, ...] = ()


@dataclass(slots=True)
class SyncState:
    current_page: int = 1
    origin: ChangeOrigin = ChangeOrigin.DOCUMENT
    suppressed: bool = False
