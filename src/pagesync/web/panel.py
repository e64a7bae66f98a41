"""WebSocket transport between a browser panel and one ``ViewerSession``.

The browser owns the real DOM and the real popup window, so the session
talks to proxies: ``WebSocketPanel`` turns scroll requests into events,
``RemoteWindowOpener`` / ``RemoteWindowHandle`` stand in for the popup
whose lifetime the browser reports back (``windowClosed``/``windowBlocked``).
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from pagesync.bridge.external import BridgeOutcome
from pagesync.models import ChangeOrigin, ChunkReference, ViewMode
from pagesync.session import ViewerSession
from pagesync.sync.coordinator import ScrollAlign
from pagesync.sync.viewport import Intersection

LOGGER = logging.getLogger(__name__)


class EventQueue:
    """Outbound events, drained by the socket writer task."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Dict[str, Any]] = asyncio.Queue()

    def emit(self, event: str, **payload: Any) -> None:
        self._queue.put_nowait({"event": event, **payload})

    async def get(self) -> Dict[str, Any]:
        return await self._queue.get()

    def drain(self) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        while not self._queue.empty():
            items.append(self._queue.get_nowait())
        return items


class WebSocketPanel:
    def __init__(self, events: EventQueue) -> None:
        self.events = events

    def scroll_to_chunk(self, chunk_id: str, align: ScrollAlign) -> None:
        self.events.emit("scroll", chunkId=chunk_id, align=align.value)


class RemoteWindowHandle:
    """Browser popup as seen from the server."""

    def __init__(self, events: EventQueue, name: str) -> None:
        self.events = events
        self.name = name
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def mark_closed(self) -> None:
        self._closed = True

    def post_message(self, message: Dict[str, Any], target_origin: str) -> None:
        if self._closed:
            raise RuntimeError(f"window {self.name} is closed")
        self.events.emit("postMessage", name=self.name, message=message, targetOrigin=target_origin)

    def focus(self) -> None:
        self.events.emit("focusWindow", name=self.name)


class RemoteWindowOpener:
    def __init__(self, events: EventQueue) -> None:
        self.events = events
        self.current: RemoteWindowHandle | None = None

    def open(self, url: str, name: str, features: str) -> RemoteWindowHandle:
        if self.current is not None:
            self.current.mark_closed()
        self.events.emit("openWindow", url=url, name=name, features=features)
        self.current = RemoteWindowHandle(self.events, name)
        return self.current

    def mark_closed(self) -> None:
        if self.current is not None:
            self.current.mark_closed()
            self.current = None


class IntersectionPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    chunk_id: str = Field(alias="chunkId")
    ratio: float = Field(ge=0.0, le=1.0)
    is_intersecting: bool = Field(default=True, alias="isIntersecting")


class ReferencePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    document_id: str = Field(alias="documentId")
    chunk_id: str = Field(alias="chunkId")
    title: str = ""
    page: Optional[int] = None
    filename: Optional[str] = None
    content: str = ""
    keywords: List[str] = Field(default_factory=list)

    def to_reference(self) -> ChunkReference:
        return ChunkReference(
            document_id=self.document_id,
            chunk_id=self.chunk_id,
            title=self.title,
            page=self.page,
            filename=self.filename,
            content=self.content,
            keywords=tuple(self.keywords),
        )


class SessionCommand(BaseModel):
    """One inbound ``{"action": ...}`` frame."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    action: str
    document_id: Optional[str] = Field(default=None, alias="documentId")
    page: Optional[int] = None
    query: Optional[str] = None
    entries: List[IntersectionPayload] = Field(default_factory=list)
    delta_y: float = Field(default=0.0, alias="deltaY")
    at_top: bool = Field(default=False, alias="atTop")
    at_bottom: bool = Field(default=False, alias="atBottom")
    mode: Optional[ViewMode] = None
    total_pages: Optional[int] = Field(default=None, alias="totalPages")
    reason: str = ""
    chunk_id: Optional[str] = Field(default=None, alias="chunkId")
    reference: Optional[ReferencePayload] = None
    question: str = ""
    url: Optional[str] = None
    enabled: Optional[bool] = None


class SessionController:
    """Maps socket commands onto a session and reports state back."""

    BACKGROUND_ACTIONS = frozenset({"load"})

    def __init__(
        self,
        session: ViewerSession,
        events: EventQueue,
        opener: RemoteWindowOpener | None = None,
    ) -> None:
        self.session = session
        self.events = events
        self.opener = opener
        self._tasks: Set[asyncio.Task[None]] = set()
        session.coordinator.add_listener(self._on_page)
        self._actions: Dict[str, Callable[[SessionCommand], Awaitable[BridgeOutcome | None]]] = {
            "load": self._do_load,
            "prev": self._do_prev,
            "next": self._do_next,
            "goto": self._do_goto,
            "search": self._do_search,
            "clearSearch": self._do_clear_search,
            "intersections": self._do_intersections,
            "wheel": self._do_wheel,
            "mode": self._do_mode,
            "rendererPage": self._do_renderer_page,
            "rendererLoaded": self._do_renderer_loaded,
            "rendererError": self._do_renderer_error,
            "highlight": self._do_highlight,
            "reference": self._do_reference,
            "toggleView": self._do_toggle_view,
            "windowClosed": self._do_window_closed,
            "windowBlocked": self._do_window_blocked,
        }

    async def submit(self, data: Any) -> None:
        """Handle a socket command, running document loads in the background.

        A later ``load`` supersedes one that is still fetching, so a load
        must not hold up the commands queued behind it.
        """
        if isinstance(data, dict) and data.get("action") in self.BACKGROUND_ACTIONS:
            task = asyncio.create_task(self.handle(data))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            return
        await self.handle(data)

    async def aclose(self) -> None:
        """Cancel background commands and wait for them to finish."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def handle(self, data: Any) -> None:
        try:
            command = SessionCommand.model_validate(data)
        except ValidationError as exc:
            LOGGER.warning("Invalid session command: %s", exc)
            self.events.emit("error", detail="Invalid command")
            return

        handler = self._actions.get(command.action)
        if handler is None:
            LOGGER.warning("Unknown session action %r", command.action)
            self.events.emit("error", detail=f"Unknown action: {command.action}")
            return

        outcome = await handler(command)
        self.emit_state(outcome)

    def emit_state(self, outcome: BridgeOutcome | None = None) -> None:
        session = self.session
        context = session.contextual_pages()
        payload: Dict[str, Any] = {
            "documentId": session.document_id,
            "title": session.document.title if session.document else "",
            "currentPage": session.current_page,
            "totalPages": session.total_pages,
            "pages": session.index.page_numbers,
            "estimation": session.index.mode.value,
            "mode": session.mode.value,
            "display": session.display_state.value,
            "suppressed": session.coordinator.suppressed,
            "pdfUrl": session.pdf_url,
            "highlightedChunkId": session.highlighted_chunk_id,
            "context": {
                "previous": context.previous.id if context and context.previous else None,
                "next": context.next.id if context and context.next else None,
            },
        }
        if outcome is not None:
            payload["window"] = outcome.value
        self.events.emit("state", **payload)

    def _on_page(self, page: int, origin: ChangeOrigin) -> None:
        self.events.emit("page", page=page, origin=origin.value)

    def _emit_search(self) -> None:
        search = self.session.search.session
        current = search.current
        self.events.emit(
            "search",
            query=search.query,
            label=search.label,
            count=len(search.matches),
            chunkId=current.id if current else None,
        )

    # -- actions ---------------------------------------------------------

    async def _do_load(self, command: SessionCommand) -> None:
        await self.session.load(command.document_id or None)
        self._emit_search()

    async def _do_prev(self, command: SessionCommand) -> None:
        self.session.previous_page()

    async def _do_next(self, command: SessionCommand) -> None:
        self.session.next_page()

    async def _do_goto(self, command: SessionCommand) -> None:
        if command.page is None:
            self.events.emit("error", detail="Missing page")
            return
        self.session.go_to_page(command.page)

    async def _do_search(self, command: SessionCommand) -> None:
        self.session.submit_search(command.query or "")
        self._emit_search()

    async def _do_clear_search(self, command: SessionCommand) -> None:
        self.session.clear_search()
        self._emit_search()

    async def _do_intersections(self, command: SessionCommand) -> None:
        self.session.observe(
            Intersection(entry.chunk_id, entry.ratio, entry.is_intersecting)
            for entry in command.entries
        )

    async def _do_wheel(self, command: SessionCommand) -> None:
        self.session.wheel(command.delta_y, at_top=command.at_top, at_bottom=command.at_bottom)

    async def _do_mode(self, command: SessionCommand) -> None:
        if command.mode is not None:
            self.session.set_mode(command.mode)
        if command.enabled is not None:
            self.session.set_page_reporting(command.enabled)

    async def _do_renderer_page(self, command: SessionCommand) -> None:
        if command.page is not None:
            self.session.on_renderer_page_change(command.page)

    async def _do_renderer_loaded(self, command: SessionCommand) -> None:
        self.session.on_renderer_document_load(command.total_pages or 0)

    async def _do_renderer_error(self, command: SessionCommand) -> None:
        self.session.on_renderer_error(command.reason or "unknown error")

    async def _do_highlight(self, command: SessionCommand) -> None:
        self.session.highlight_chunk(command.chunk_id)

    async def _do_reference(self, command: SessionCommand) -> BridgeOutcome | None:
        if command.reference is None:
            self.events.emit("error", detail="Missing reference")
            return None
        return self.session.open_reference(command.reference.to_reference(), command.question)

    async def _do_toggle_view(self, command: SessionCommand) -> BridgeOutcome | None:
        return self.session.toggle_view()

    async def _do_window_closed(self, command: SessionCommand) -> None:
        if self.opener is not None:
            self.opener.mark_closed()
        if self.session.bridge is not None:
            self.session.bridge.mark_closed()

    async def _do_window_blocked(self, command: SessionCommand) -> BridgeOutcome | None:
        if self.opener is not None:
            self.opener.mark_closed()
        if self.session.bridge is None or not command.url:
            return None
        return self.session.bridge.handle_blocked(command.url)
