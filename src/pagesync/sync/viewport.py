"""Scroll-position page tracking for the text panel."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable

from pagesync.config import SyncConfig
from pagesync.paging.index import ChunkPageIndex
from pagesync.sync.coordinator import SyncCoordinator
from pagesync.sync.timers import Debouncer, Scheduler

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class Intersection:
    """One observation of a chunk element against the scroll viewport."""

    chunk_id: str
    ratio: float
    is_intersecting: bool = True


class ViewportObserver:
    """Turns intersection batches into debounced page-change requests.

    Observation only runs while the text panel is the active surface, the
    document has chunks and page reporting is enabled. Rebuild it whenever
    one of those inputs changes.
    """

    def __init__(
        self,
        coordinator: SyncCoordinator,
        scheduler: Scheduler,
        config: SyncConfig | None = None,
    ) -> None:
        self.coordinator = coordinator
        self.config = config or coordinator.config
        self._index = ChunkPageIndex.empty()
        self._ratios: Dict[str, float] = {}
        self._debouncer: Debouncer[int] = Debouncer(
            scheduler, self.config.debounce, self._emit
        )
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    @property
    def pending(self) -> bool:
        return self._debouncer.pending

    def start(self, index: ChunkPageIndex, *, panel_active: bool, enabled: bool = True) -> bool:
        self.stop()
        if not (panel_active and enabled and not index.is_empty):
            return False
        self._index = index
        self._active = True
        LOGGER.debug("Observing %d chunks", len(index))
        return True

    def stop(self) -> None:
        self._debouncer.cancel()
        self._ratios.clear()
        self._index = ChunkPageIndex.empty()
        self._active = False

    def observe(self, entries: Iterable[Intersection]) -> None:
        if not self._active:
            return

        for entry in entries:
            if entry.is_intersecting and entry.ratio > 0:
                self._ratios[entry.chunk_id] = entry.ratio
            else:
                self._ratios.pop(entry.chunk_id, None)

        # Programmatic scrolls still update the ratios, they just never move the page
        if self.coordinator.suppressed:
            self._debouncer.cancel()
            return

        page = self._most_visible_page()
        if page is None:
            return
        if page == self.coordinator.current_page:
            # Scrolled back before the quiet period ended
            self._debouncer.cancel()
            return
        self._debouncer.push(page)

    def _most_visible_page(self) -> int | None:
        threshold = self.config.visibility_threshold
        best_ratio = 0.0
        best_page: int | None = None
        for chunk_id, ratio in self._ratios.items():
            if ratio < threshold or ratio <= best_ratio:
                continue
            page = self._index.page_of(chunk_id)
            if page is None:
                continue
            best_ratio = ratio
            best_page = page
        return best_page

    def _emit(self, page: int) -> None:
        if self.coordinator.request_from_viewport(page):
            LOGGER.debug("Text panel scrolled to page %d", page)
