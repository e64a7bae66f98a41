"""Single authority for the shared current page.

Three surfaces can ask for a page change: the scrollable text panel (via the
viewport observer), explicit navigation (buttons, typed page numbers, search
jumps) and the PDF renderers. Programmatic moves scroll the text panel, and
the browser reports those scrolls back as intersection changes some time
later. Instead of trying to tell "our" scroll events apart from the user's,
every programmatic move mutes viewport requests for a short cooldown.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, List, Protocol

from pagesync.config import SyncConfig
from pagesync.models import ChangeOrigin, Chunk, SyncState
from pagesync.paging.index import ChunkPageIndex, Direction
from pagesync.sync.timers import Scheduler, TimerHandle

LOGGER = logging.getLogger(__name__)

PageListener = Callable[[int, ChangeOrigin], None]


class ScrollAlign(str, Enum):
    START = "start"
    CENTER = "center"


class TextPanel(Protocol):
    """Scrollable chunk panel, as far as the coordinator is concerned."""

    def scroll_to_chunk(self, chunk_id: str, align: ScrollAlign) -> None: ...


class PageForwarder(Protocol):
    @property
    def is_open(self) -> bool: ...

    def forward_page(self, page: int) -> bool: ...


class SuppressionState(str, Enum):
    ACTIVE = "active"
    SUPPRESSED = "suppressed"


class SuppressionGate:
    """Two-state machine muting viewport requests around programmatic moves."""

    def __init__(
        self, scheduler: Scheduler, on_change: Callable[[bool], None] | None = None
    ) -> None:
        self._scheduler = scheduler
        self._on_change = on_change
        self._release: TimerHandle | None = None
        self.state = SuppressionState.ACTIVE

    @property
    def suppressed(self) -> bool:
        return self.state is SuppressionState.SUPPRESSED

    def enter(self) -> None:
        self._cancel_release()
        if not self.suppressed:
            LOGGER.debug("Viewport requests suppressed")
        self._set(SuppressionState.SUPPRESSED)

    def release_after(self, delay: float) -> None:
        self._cancel_release()
        self._release = self._scheduler.call_later(delay, self.exit)

    def exit(self) -> None:
        self._release = None
        if self.suppressed:
            LOGGER.debug("Viewport requests active again")
        self._set(SuppressionState.ACTIVE)

    def reset(self) -> None:
        self._cancel_release()
        self._set(SuppressionState.ACTIVE)

    def _set(self, state: SuppressionState) -> None:
        self.state = state
        if self._on_change is not None:
            self._on_change(state is SuppressionState.SUPPRESSED)

    def _cancel_release(self) -> None:
        if self._release is not None:
            self._release.cancel()
            self._release = None


class SyncCoordinator:
    """Arbitrates page-change requests and keeps every surface in step."""

    def __init__(
        self,
        scheduler: Scheduler,
        config: SyncConfig | None = None,
        *,
        panel: TextPanel | None = None,
        bridge: PageForwarder | None = None,
    ) -> None:
        self.scheduler = scheduler
        self.config = config or SyncConfig()
        self.panel = panel
        self.bridge = bridge
        self.panel_active = True
        self.index = ChunkPageIndex.empty()
        self.state = SyncState()
        self._gate = SuppressionGate(scheduler, self._on_suppression_change)
        self._scroll_timer: TimerHandle | None = None
        self._wheel_timer: TimerHandle | None = None
        self._listeners: List[PageListener] = []

    @property
    def current_page(self) -> int:
        return self.state.current_page

    @property
    def suppressed(self) -> bool:
        return self._gate.suppressed

    @property
    def max_page(self) -> int:
        return max(self.index.max_page, 1)

    def add_listener(self, listener: PageListener) -> None:
        self._listeners.append(listener)

    # -- index lifecycle -------------------------------------------------

    def set_index(self, index: ChunkPageIndex) -> None:
        """React to a rebuilt index: the bound may have moved."""
        self.index = index
        if index.max_page <= 0:
            return
        clamped = index.clamp(self.current_page)
        if clamped != self.current_page:
            LOGGER.info(
                "Page %d is beyond the corrected bound, clamping to %d",
                self.current_page,
                clamped,
            )
            self._apply(clamped, ChangeOrigin.DOCUMENT)

    def reset(self, index: ChunkPageIndex | None = None) -> None:
        """Forget everything about the previous document."""
        self.teardown()
        self.index = index if index is not None else ChunkPageIndex.empty()
        self._apply(1, ChangeOrigin.DOCUMENT)

    def teardown(self) -> None:
        self._gate.reset()
        for timer in (self._scroll_timer, self._wheel_timer):
            if timer is not None:
                timer.cancel()
        self._scroll_timer = None
        self._wheel_timer = None

    # -- explicit navigation ---------------------------------------------

    def previous_page(self) -> bool:
        requested = max(1, self.current_page - 1)
        return self._navigate(self.index.nearest_page(requested, Direction.PREV))

    def next_page(self) -> bool:
        requested = min(self.max_page, self.current_page + 1)
        return self._navigate(self.index.nearest_page(requested, Direction.NEXT))

    def go_to_page(self, page: int) -> bool:
        """Jump to a typed page number, clamped and snapped to a page with chunks."""
        requested = self.index.clamp(page)
        direction = Direction.NEXT if requested >= self.current_page else Direction.PREV
        return self._navigate(self.index.nearest_page(requested, direction))

    def wheel(self, delta_y: float, *, at_top: bool, at_bottom: bool) -> bool:
        """Turn the page when the wheel pushes past an edge of the panel."""
        if not self.panel_active or self._wheel_timer is not None:
            return False
        if delta_y < 0 and at_top and self.current_page > 1:
            moved = self.previous_page()
        elif delta_y > 0 and at_bottom and self.current_page < self.max_page:
            moved = self.next_page()
        else:
            return False
        self._wheel_timer = self.scheduler.call_later(
            self.config.wheel_cooldown, self._end_wheel_cooldown
        )
        return moved

    # -- requests from other surfaces -------------------------------------

    def request_from_viewport(self, page: int) -> bool:
        """Accept a scroll-derived page unless a programmatic move is settling."""
        if self.suppressed:
            LOGGER.debug("Ignoring viewport page %d while suppressed", page)
            return False
        target = self.index.clamp(page)
        if target == self.current_page:
            return False
        # The panel is already showing this page, so no scroll is issued.
        self._apply(target, ChangeOrigin.VIEWPORT)
        return True

    def request_from_renderer(self, page: int) -> bool:
        """Follow a page reported by an embedded or external renderer."""
        target = self.index.clamp(page)
        if target == self.current_page:
            return False
        self._gate.enter()
        self._apply(target, ChangeOrigin.RENDERER)
        first = self.index.first_chunk(target)
        delay = self.config.renderer_scroll_delay
        if first is not None:
            self._schedule_scroll(first.id, ScrollAlign.START, delay)
        self._release_after(delay + self.config.renderer_cooldown)
        return True

    def request_from_search(self, chunk: Chunk) -> bool:
        return self.jump_to_chunk(chunk.id, ChangeOrigin.SEARCH)

    def jump_to_chunk(self, chunk_id: str, origin: ChangeOrigin = ChangeOrigin.SEARCH) -> bool:
        """Move to the page holding ``chunk_id`` and centre that exact chunk."""
        page = self.index.page_of(chunk_id)
        if page is None:
            LOGGER.debug("Chunk %s is not part of the current document", chunk_id)
            return False
        # Unpaged chunks of a paged document sit in group 0
        page = self.index.clamp(page)
        self._gate.enter()
        if page != self.current_page:
            self._apply(page, origin)
        delay = self.config.search_scroll_delay
        self._schedule_scroll(chunk_id, ScrollAlign.CENTER, delay)
        self._release_after(delay + self.config.search_cooldown)
        return True

    # -- internals ---------------------------------------------------------

    def _navigate(self, target: int) -> bool:
        if target == self.current_page:
            return False
        LOGGER.debug("Navigating from page %d to %d", self.current_page, target)
        self._gate.enter()
        self._apply(target, ChangeOrigin.NAVIGATION)
        first = self.index.first_chunk(target)
        if first is not None:
            self._schedule_scroll(first.id, ScrollAlign.START, 0.0)
        self._release_after(self.config.navigation_cooldown)
        return True

    def _apply(self, page: int, origin: ChangeOrigin) -> None:
        self.state.current_page = page
        self.state.origin = origin
        for listener in list(self._listeners):
            listener(page, origin)
        if self.bridge is not None and self.bridge.is_open:
            self.bridge.forward_page(page)

    def _schedule_scroll(self, chunk_id: str, align: ScrollAlign, delay: float) -> None:
        if self._scroll_timer is not None:
            self._scroll_timer.cancel()
            self._scroll_timer = None
        if self.panel is None or not self.panel_active:
            return
        self._scroll_timer = self.scheduler.call_later(
            delay, lambda: self._scroll(chunk_id, align)
        )

    def _scroll(self, chunk_id: str, align: ScrollAlign) -> None:
        self._scroll_timer = None
        if self.panel is not None and self.panel_active:
            self.panel.scroll_to_chunk(chunk_id, align)

    def _release_after(self, delay: float) -> None:
        self._gate.release_after(delay)

    def _on_suppression_change(self, suppressed: bool) -> None:
        self.state.suppressed = suppressed

    def _end_wheel_cooldown(self) -> None:
        self._wheel_timer = None
