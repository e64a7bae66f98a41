"""Deferred execution primitives for the single-threaded sync core.

Everything that waits in PageSync schedules a callback on an event loop;
nothing blocks. The :class:`Scheduler` protocol keeps the loop substitutable
so tests can drive time by hand.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Callable, Deque, Generic, Protocol, TypeVar

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


class AsyncioScheduler:
    """Scheduler backed by an asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return self.loop.call_later(delay, callback)


class Debouncer(Generic[T]):
    """Coalescing buffer: collects candidates, emits the latest once quiet.

    Every :meth:`push` restarts the timer, so at most one value is emitted
    per quiet period of ``delay`` seconds.
    """

    def __init__(self, scheduler: Scheduler, delay: float, emit: Callable[[T], None]) -> None:
        self._scheduler = scheduler
        self._delay = delay
        self._emit = emit
        self._queue: Deque[T] = deque()
        self._timer: TimerHandle | None = None

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def push(self, value: T) -> None:
        self._queue.append(value)
        if self._timer is not None:
            self._timer.cancel()
        self._timer = self._scheduler.call_later(self._delay, self._fire)

    def cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._queue.clear()

    def _fire(self) -> None:
        self._timer = None
        if not self._queue:
            return
        value = self._queue.pop()
        LOGGER.debug("Debounced %d candidate(s) into %r", len(self._queue) + 1, value)
        self._queue.clear()
        self._emit(value)


class Poller:
    """Runs ``check`` every ``interval`` seconds until it returns False or is stopped."""

    def __init__(self, scheduler: Scheduler, interval: float, check: Callable[[], bool]) -> None:
        self._scheduler = scheduler
        self._interval = interval
        self._check = check
        self._timer: TimerHandle | None = None

    @property
    def running(self) -> bool:
        return self._timer is not None

    def start(self) -> None:
        self.stop()
        self._timer = self._scheduler.call_later(self._interval, self._tick)

    def stop(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _tick(self) -> None:
        self._timer = None
        if self._check():
            self._timer = self._scheduler.call_later(self._interval, self._tick)
