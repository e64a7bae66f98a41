"""One document viewed through the text panel and the PDF renderers.

``ViewerSession`` owns the per-document state: the loaded chunks, the page
index derived from them, the view mode and the search session. It wires the
sync components together and is the object the transports (web socket,
desktop shell, CLI) talk to.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, List, Protocol, TypeVar

from pagesync.bridge.external import (
    BridgeOutcome,
    ExternalWindowBridge,
    ViewerRequest,
    WindowOpener,
)
from pagesync.config import AppConfig, SyncConfig
from pagesync.models import ChangeOrigin, Chunk, ChunkReference, DocumentInfo, ViewMode
from pagesync.paging.estimator import PageEstimator
from pagesync.paging.index import ChunkPageIndex
from pagesync.store.storage import SQLiteChunkStore
from pagesync.sync.coordinator import SyncCoordinator, TextPanel
from pagesync.sync.search import SearchNavigator
from pagesync.sync.timers import Scheduler, TimerHandle
from pagesync.sync.viewport import Intersection, ViewportObserver
from pagesync.utils.text import core_phrase, select_highlight_terms

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class DocumentSource(Protocol):
    """Read-only access to stored documents."""

    async def get_document(self, document_id: str) -> DocumentInfo | None: ...

    async def get_chunks(self, document_id: str) -> List[Chunk]: ...


class StoreDocumentSource:
    """Runs the synchronous SQLite store off the event loop."""

    def __init__(self, store: SQLiteChunkStore) -> None:
        self.store = store
        self._lock = threading.Lock()

    async def get_document(self, document_id: str) -> DocumentInfo | None:
        return await asyncio.to_thread(self._locked, self.store.get_document, document_id)

    async def get_chunks(self, document_id: str) -> List[Chunk]:
        return await asyncio.to_thread(self._locked, self.store.get_chunks, document_id)

    def _locked(self, func: Callable[[str], T], document_id: str) -> T:
        with self._lock:
            return func(document_id)


class DisplayState(str, Enum):
    EMPTY = "empty"
    LOADING = "loading"
    READY = "ready"
    CANNOT_DISPLAY = "cannot_display"


@dataclass(slots=True)
class ContextPages:
    """First chunk of the pages around a highlighted chunk."""

    previous: Chunk | None = None
    next: Chunk | None = None


class ViewerSession:
    def __init__(
        self,
        source: DocumentSource,
        scheduler: Scheduler,
        *,
        app_config: AppConfig | None = None,
        sync_config: SyncConfig | None = None,
        panel: TextPanel | None = None,
        opener: WindowOpener | None = None,
        navigate: Callable[[str], None] | None = None,
        confirm: Callable[[str], bool] | None = None,
    ) -> None:
        self.source = source
        self.scheduler = scheduler
        self.app_config = app_config or AppConfig()
        self.sync_config = sync_config or SyncConfig()
        self.estimator = PageEstimator(self.sync_config.chunks_per_page)

        self.bridge: ExternalWindowBridge | None = None
        if opener is not None:
            self.bridge = ExternalWindowBridge(
                opener,
                scheduler,
                self.sync_config,
                origin=self.app_config.origin,
                viewer_path=self.app_config.viewer_path,
                navigate=navigate,
                confirm=confirm,
            )
        self.coordinator = SyncCoordinator(
            scheduler, self.sync_config, panel=panel, bridge=self.bridge
        )
        self.observer = ViewportObserver(self.coordinator, scheduler, self.sync_config)
        self.search = SearchNavigator(self.coordinator)

        self.document_id: str | None = None
        self.document: DocumentInfo | None = None
        self.chunks: List[Chunk] = []
        self.index = ChunkPageIndex.empty()
        self.mode = ViewMode.TEXT
        self.loading = False
        self.page_reporting = True
        self.highlighted_chunk_id: str | None = None
        self._renderer_total = 0
        self._generation = 0
        self._fallback: TimerHandle | None = None

    # -- derived state -----------------------------------------------------

    @property
    def current_page(self) -> int:
        return self.coordinator.current_page

    @property
    def declared_total(self) -> int:
        if self.document is not None and self.document.total_pages > 0:
            return self.document.total_pages
        return self._renderer_total

    @property
    def total_pages(self) -> int:
        return self.index.total_pages

    @property
    def pdf_url(self) -> str:
        filename = self.document.filename if self.document is not None else None
        return self.app_config.pdf_url(filename)

    @property
    def display_state(self) -> DisplayState:
        if self.document_id is None:
            return DisplayState.EMPTY
        if self.loading:
            return DisplayState.LOADING
        if self.mode is ViewMode.PDF and not self.pdf_url:
            return DisplayState.CANNOT_DISPLAY
        return DisplayState.READY

    def page_chunks(self, page: int | None = None) -> List[Chunk]:
        return self.index.chunks_for(self.current_page if page is None else page)

    # -- document lifecycle ------------------------------------------------

    async def load(self, document_id: str | None) -> None:
        """Switch to ``document_id``; metadata and chunks may arrive in any order."""
        self._generation += 1
        generation = self._generation
        self._reset_document()
        self.document_id = document_id
        if document_id is None:
            return

        self.loading = True
        try:
            await asyncio.gather(
                self._fetch_document(generation, document_id),
                self._fetch_chunks(generation, document_id),
            )
        finally:
            if generation == self._generation:
                self.loading = False

        if generation == self._generation:
            LOGGER.info(
                "Loaded %s: %d chunks over %d pages (%s)",
                document_id,
                len(self.chunks),
                self.total_pages,
                self.index.mode.value,
            )

    async def _fetch_document(self, generation: int, document_id: str) -> None:
        try:
            info = await self.source.get_document(document_id)
        except Exception as exc:
            LOGGER.error("Failed to load document %s: %s", document_id, exc)
            info = None
        if generation != self._generation:
            return
        if info is None:
            LOGGER.warning("No metadata for document %s", document_id)
            info = DocumentInfo(id=document_id, title="")
        self.document = info
        self._rebuild_index()

    async def _fetch_chunks(self, generation: int, document_id: str) -> None:
        try:
            chunks = await self.source.get_chunks(document_id)
        except Exception as exc:
            LOGGER.error("Failed to load chunks for %s: %s", document_id, exc)
            chunks = []
        if generation != self._generation:
            return
        self.chunks = list(chunks)
        self.search.set_chunks(self.chunks)
        self._rebuild_index()
        if self.highlighted_chunk_id is not None:
            self.coordinator.jump_to_chunk(self.highlighted_chunk_id, ChangeOrigin.REFERENCE)

    def _rebuild_index(self) -> None:
        self.index = ChunkPageIndex.build(self.chunks, self.declared_total, self.estimator)
        self.coordinator.set_index(self.index)
        self._restart_observer()

    def _reset_document(self) -> None:
        self._cancel_fallback()
        self.observer.stop()
        self.search.set_chunks([])
        self.document = None
        self.chunks = []
        self.index = ChunkPageIndex.empty()
        self.highlighted_chunk_id = None
        self._renderer_total = 0
        self.loading = False
        self.coordinator.reset(self.index)

    def close(self) -> None:
        self._generation += 1
        self._cancel_fallback()
        self.observer.stop()
        self.coordinator.teardown()
        if self.bridge is not None:
            self.bridge.close()

    # -- view mode -------------------------------------------------------------

    def set_mode(self, mode: ViewMode) -> None:
        self._cancel_fallback()
        if mode is self.mode:
            return
        LOGGER.info("Switching view to %s", mode.value)
        self.mode = mode
        self.coordinator.panel_active = mode is ViewMode.TEXT
        self._restart_observer()

    def set_page_reporting(self, enabled: bool) -> None:
        self.page_reporting = enabled
        self._restart_observer()

    def toggle_view(self) -> BridgeOutcome | None:
        """Text view opens the external viewer; PDF view returns to text."""
        if self.mode is ViewMode.PDF:
            self.set_mode(ViewMode.TEXT)
            return None
        url = self.pdf_url
        if url and self.bridge is not None:
            return self.bridge.show(
                ViewerRequest(url, self.current_page, title=self._title())
            )
        LOGGER.warning("No PDF source for document %s", self.document_id)
        self.set_mode(ViewMode.PDF)
        return None

    def _restart_observer(self) -> None:
        self.observer.start(
            self.index,
            panel_active=self.mode is ViewMode.TEXT and self.coordinator.panel is not None,
            enabled=self.page_reporting,
        )

    # -- renderer callbacks ----------------------------------------------------

    def on_renderer_page_change(self, page: int) -> bool:
        return self.coordinator.request_from_renderer(page)

    def on_renderer_document_load(self, total_pages: int) -> None:
        LOGGER.info("Renderer loaded %d pages", total_pages)
        if total_pages <= 0 or total_pages == self._renderer_total:
            return
        self._renderer_total = total_pages
        if self.document is None or self.document.total_pages <= 0:
            self._rebuild_index()

    def on_renderer_error(self, reason: str) -> None:
        LOGGER.error("Renderer failed: %s", reason)
        self._cancel_fallback()
        self._fallback = self.scheduler.call_later(
            self.sync_config.renderer_error_fallback, self._fall_back_to_text
        )

    def _fall_back_to_text(self) -> None:
        self._fallback = None
        LOGGER.warning("Falling back to the text view after a renderer failure")
        self.set_mode(ViewMode.TEXT)

    def _cancel_fallback(self) -> None:
        if self._fallback is not None:
            self._fallback.cancel()
            self._fallback = None

    # -- navigation --------------------------------------------------------

    def previous_page(self) -> bool:
        return self.coordinator.previous_page()

    def next_page(self) -> bool:
        return self.coordinator.next_page()

    def go_to_page(self, page: int) -> bool:
        return self.coordinator.go_to_page(page)

    def wheel(self, delta_y: float, *, at_top: bool, at_bottom: bool) -> bool:
        return self.coordinator.wheel(delta_y, at_top=at_top, at_bottom=at_bottom)

    def observe(self, entries: Iterable[Intersection]) -> None:
        self.observer.observe(entries)

    def submit_search(self, query: str) -> Chunk | None:
        return self.search.submit(query)

    def clear_search(self) -> None:
        self.search.reset()

    # -- references ------------------------------------------------------

    def highlight_chunk(self, chunk_id: str | None) -> bool:
        """Enter (or with None, leave) context mode around one chunk."""
        self.highlighted_chunk_id = chunk_id or None
        if self.highlighted_chunk_id is None:
            return False
        return self.coordinator.jump_to_chunk(self.highlighted_chunk_id, ChangeOrigin.REFERENCE)

    def contextual_pages(self) -> ContextPages | None:
        """Preview of the neighbouring stored pages of the highlighted chunk."""
        if self.highlighted_chunk_id is None:
            return None
        chunk = next((c for c in self.chunks if c.id == self.highlighted_chunk_id), None)
        if chunk is None or not chunk.has_page:
            return None
        page = chunk.page or 0
        previous = next((c for c in self.chunks if c.page == page - 1), None)
        following = next((c for c in self.chunks if c.page == page + 1), None)
        return ContextPages(previous=previous, next=following)

    def open_reference(self, reference: ChunkReference, question: str = "") -> BridgeOutcome:
        """Show a cited chunk in the external viewer with highlight hints."""
        if self.bridge is None:
            return BridgeOutcome.SKIPPED
        url = self.app_config.pdf_url(reference.filename)
        page = reference.page or 0
        if not url or page < 1:
            LOGGER.warning(
                "Reference %s has no filename or page, not opening the viewer",
                reference.chunk_id,
            )
            return BridgeOutcome.SKIPPED
        request = ViewerRequest(
            url,
            page,
            title=reference.title or reference.filename or "",
            highlight=select_highlight_terms(reference.keywords, question),
            search_text=core_phrase(reference.content),
        )
        return self.bridge.show(request)

    def _title(self) -> str:
        if self.document is not None and self.document.title:
            return self.document.title
        return "PDF"
