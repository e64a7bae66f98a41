"""Shared fixtures: a hand-driven clock and fake collaborators."""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Sequence, Tuple

import pytest

from pagesync.models import Chunk
from pagesync.sync.coordinator import ScrollAlign


class ManualTimer:
    def __init__(self, when: float, seq: int, callback: Callable[[], None]) -> None:
        self.when = when
        self.seq = seq
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Scheduler whose clock only moves when a test calls :meth:`advance`."""

    def __init__(self) -> None:
        self.now = 0.0
        self._timers: List[ManualTimer] = []
        self._seq = 0

    def call_later(self, delay: float, callback: Callable[[], None]) -> ManualTimer:
        self._seq += 1
        timer = ManualTimer(self.now + delay, self._seq, callback)
        self._timers.append(timer)
        return timer

    @property
    def pending(self) -> int:
        return sum(1 for timer in self._timers if not timer.cancelled)

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [t for t in self._timers if not t.cancelled and t.when <= target + 1e-9]
            if not due:
                break
            timer = min(due, key=lambda t: (t.when, t.seq))
            self._timers.remove(timer)
            self.now = max(self.now, timer.when)
            timer.callback()
        self._timers = [t for t in self._timers if not t.cancelled]
        self.now = target


class RecordingPanel:
    def __init__(self) -> None:
        self.scrolls: List[Tuple[str, ScrollAlign]] = []

    def scroll_to_chunk(self, chunk_id: str, align: ScrollAlign) -> None:
        self.scrolls.append((chunk_id, align))


class FakeWindow:
    def __init__(self, url: str = "") -> None:
        self.url = url
        self.closed = False
        self.fail = False
        self.messages: List[Tuple[Dict[str, Any], str]] = []
        self.focus_count = 0

    def post_message(self, message: Dict[str, Any], target_origin: str) -> None:
        if self.fail:
            raise RuntimeError("window is gone")
        self.messages.append((message, target_origin))

    def focus(self) -> None:
        self.focus_count += 1


class FakeOpener:
    def __init__(self) -> None:
        self.windows: List[FakeWindow] = []
        self.calls: List[Tuple[str, str, str]] = []
        self.blocked = False

    def open(self, url: str, name: str, features: str) -> FakeWindow | None:
        self.calls.append((url, name, features))
        if self.blocked:
            return None
        window = FakeWindow(url)
        self.windows.append(window)
        return window


def make_chunks(
    count: int,
    pages: Sequence[int | None] | None = None,
    *,
    document_id: str = "doc",
    contents: Sequence[str] | None = None,
) -> List[Chunk]:
    """``count`` chunks named ``c0..cN`` with optional stored pages."""
    return [
        Chunk(
            id=f"c{i}",
            document_id=document_id,
            content=contents[i] if contents is not None else f"chunk {i}",
            page=pages[i] if pages is not None else None,
            position=i,
        )
        for i in range(count)
    ]


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def panel() -> RecordingPanel:
    return RecordingPanel()


@pytest.fixture
def opener() -> FakeOpener:
    return FakeOpener()
