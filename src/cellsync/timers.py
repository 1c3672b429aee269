"""Timer backends — where scheduled callbacks actually wait.

Schedulers never sleep themselves. They ask a Timers backend for a clock
reading (now) and a cancellable delayed call (call_later). Three backends:

- ThreadingTimers: daemon threading.Timer per call, time.monotonic clock.
  Callbacks run on the timer thread; Cell.set() marshals them back when a
  scheduler is installed (see cell.set_scheduler).
- AsyncioTimers: loop.call_later on a running event loop.
- ManualTimers: a virtual clock advanced by hand. Nothing fires until
  advance() is called, which makes timing fully deterministic.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import threading
import time
from typing import Callable, Protocol


class TimerHandle:
    """Handle to one pending callback. cancel() is idempotent."""

    __slots__ = ("_cancel", "_cancelled")

    def __init__(self, cancel: Callable[[], None]) -> None:
        self._cancel = cancel
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if not self._cancelled:
            self._cancelled = True
            self._cancel()


class Timers(Protocol):
    def now(self) -> float: ...

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


class ThreadingTimers:
    """Daemon threading.Timer per scheduled call."""

    def now(self) -> float:
        return time.monotonic()

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        t = threading.Timer(max(delay, 0.0), callback)
        t.daemon = True
        handle = TimerHandle(t.cancel)
        t.start()
        return handle


class AsyncioTimers:
    """Schedules on an asyncio event loop (the running one by default)."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return self.loop.time()

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        timer = self.loop.call_later(max(delay, 0.0), callback)
        return TimerHandle(timer.cancel)


class ManualTimers:
    """Virtual clock. Callbacks fire only inside advance().

    Usage:
        timers = ManualTimers()
        timers.call_later(0.3, lambda: print("fired"))
        timers.advance(0.2)  # nothing
        timers.advance(0.1)  # fired
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now = start
        self._queue: list[tuple[float, int, Callable[[], None], TimerHandle]] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        handle = TimerHandle(lambda: None)
        heapq.heappush(
            self._queue, (self._now + max(delay, 0.0), next(self._seq), callback, handle)
        )
        return handle

    def advance(self, seconds: float) -> None:
        """Move the clock forward, firing due callbacks in deadline order.

        Callbacks scheduled while advancing fire too if they fall due
        before the target time.
        """
        target = self._now + seconds
        while self._queue and self._queue[0][0] <= target:
            deadline, _, callback, handle = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self._now = deadline
            callback()
        self._now = target

    def pending_count(self) -> int:
        """Number of callbacks still waiting to fire. Useful for testing."""
        return sum(1 for entry in self._queue if not entry[3].cancelled)
