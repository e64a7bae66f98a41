"""Owner of the reference to the externally opened renderer window."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Protocol, Tuple
from urllib.parse import urlencode

from pagesync.bridge.messages import ChangePageMessage, WindowChannel, WindowHandle
from pagesync.config import SyncConfig
from pagesync.sync.timers import Poller, Scheduler, TimerHandle

LOGGER = logging.getLogger(__name__)

BLOCKED_PROMPT = "The viewer window was blocked. Open the PDF in the current window instead?"


class BridgeOutcome(str, Enum):
    OPENED = "opened"
    REUSED = "reused"
    FALLBACK = "fallback"
    BLOCKED = "blocked"
    SKIPPED = "skipped"


class WindowOpener(Protocol):
    def open(self, url: str, name: str, features: str) -> WindowHandle | None: ...


@dataclass(slots=True)
class ViewerRequest:
    pdf_url: str
    page: int
    title: str = ""
    highlight: Tuple[str, ...] = ()
    search_text: str | None = None

    def to_message(self) -> ChangePageMessage:
        return ChangePageMessage(
            page=self.page,
            highlight=list(self.highlight) or None,
            search_text=self.search_text or None,
        )


def build_viewer_url(viewer_path: str, request: ViewerRequest) -> str:
    """Popup address carrying the document source, page and highlight hints."""
    params = {
        "url": request.pdf_url,
        "page": str(request.page),
        "title": request.title or "PDF",
    }
    if request.highlight:
        params["highlight"] = ",".join(request.highlight)
    if request.search_text:
        params["searchText"] = request.search_text
    return f"{viewer_path}?{urlencode(params)}"


class ExternalWindowBridge:
    """Holds at most one live viewer window and sends it fire-and-forget commands.

    The window's lifecycle belongs to the user and the platform. Liveness is
    re-checked before every use and polled in the background; a closed
    window simply clears the reference so the next request opens a new one.
    """

    def __init__(
        self,
        opener: WindowOpener,
        scheduler: Scheduler,
        config: SyncConfig | None = None,
        *,
        origin: str,
        viewer_path: str = "/pdf-viewer.html",
        navigate: Callable[[str], None] | None = None,
        confirm: Callable[[str], bool] | None = None,
    ) -> None:
        self.opener = opener
        self.scheduler = scheduler
        self.config = config or SyncConfig()
        self.origin = origin
        self.viewer_path = viewer_path
        self.navigate = navigate
        self.confirm = confirm
        self.channel: WindowChannel | None = None
        self._poller = Poller(scheduler, self.config.liveness_interval, self._check_liveness)
        self._grace: TimerHandle | None = None

    @property
    def is_open(self) -> bool:
        if self.channel is None:
            return False
        if self.channel.closed:
            LOGGER.info("Viewer window was closed")
            self._clear()
            return False
        return True

    def show(self, request: ViewerRequest) -> BridgeOutcome:
        """Point the viewer at ``request``, reusing a live window when there is one."""
        if not request.pdf_url or request.page < 1:
            LOGGER.warning("No PDF source or page to show (page=%s)", request.page)
            return BridgeOutcome.SKIPPED

        if self.is_open and self._send(request.to_message()):
            self._focus()
            LOGGER.info("Moved open viewer window to page %d", request.page)
            return BridgeOutcome.REUSED

        return self._open(build_viewer_url(self.viewer_path, request))

    def forward_page(self, page: int) -> bool:
        """Best-effort page sync towards an already open window."""
        if page < 1 or not self.is_open:
            return False
        LOGGER.debug("Forwarding page %d to viewer window", page)
        return self._send(ChangePageMessage(page=page))

    def handle_blocked(self, url: str) -> BridgeOutcome:
        """Offer in-place navigation when the window could not be created."""
        LOGGER.error("Could not open viewer window, popup may be blocked")
        self._clear()
        if self.navigate is None:
            return BridgeOutcome.BLOCKED
        if self.confirm is not None and not self.confirm(BLOCKED_PROMPT):
            return BridgeOutcome.BLOCKED
        self.navigate(url)
        return BridgeOutcome.FALLBACK

    def mark_closed(self) -> None:
        if self.channel is not None:
            LOGGER.info("Viewer window reported closed")
        self._clear()

    def close(self) -> None:
        """Drop the reference; the window itself is left alone."""
        self._clear()

    def _open(self, url: str) -> BridgeOutcome:
        try:
            handle = self.opener.open(url, self.config.window_name, self.config.window_features)
        except Exception as exc:
            LOGGER.error("Window opener failed for %s: %s", url, exc)
            handle = None
        if handle is None:
            return self.handle_blocked(url)

        self.channel = WindowChannel(handle, self.origin)
        self._poller.start()
        LOGGER.info("Opened viewer window: %s", url)
        return BridgeOutcome.OPENED

    def _send(self, message: ChangePageMessage) -> bool:
        channel = self.channel
        if channel is None:
            return False
        try:
            channel.send(message)
        except Exception as exc:
            LOGGER.error("Failed to post message to viewer window: %s", exc)
            self._clear()
            return False
        if self._grace is not None:
            self._grace.cancel()
        self._grace = self.scheduler.call_later(
            self.config.send_grace, lambda: self._after_send(message.page)
        )
        return True

    def _after_send(self, page: int) -> None:
        self._grace = None
        if self.is_open:
            LOGGER.debug("Sent page %d to viewer window", page)
        else:
            LOGGER.warning("Viewer window closed right after page %d was sent", page)

    def _focus(self) -> None:
        if self.channel is None:
            return
        try:
            self.channel.handle.focus()
        except Exception as exc:
            LOGGER.warning("Could not focus viewer window: %s", exc)

    def _check_liveness(self) -> bool:
        return self.is_open

    def _clear(self) -> None:
        self.channel = None
        self._poller.stop()
        if self._grace is not None:
            self._grace.cancel()
            self._grace = None
