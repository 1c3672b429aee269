"""Debounce and throttle — timed views over a changing Cell.

Each scheduler subscribes to a source cell and drives its own output cell.
At most one timer is pending per scheduler: a new trigger cancels the
previous handle before scheduling the next. dispose() cancels the pending
timer and unsubscribes; nothing fires afterwards.
"""

from __future__ import annotations

import functools
import logging
import threading
from typing import Callable, Generic, TypeVar

from cellsync.cell import Cell, Listener, Unsubscribe
from cellsync.config import get_settings
from cellsync.timers import ThreadingTimers, TimerHandle, Timers

T = TypeVar("T")

logger = logging.getLogger(__name__)

_default_timers: Timers = ThreadingTimers()


def set_default_timers(timers: Timers) -> None:
    """Backend used by schedulers created without timers=."""
    global _default_timers
    _default_timers = timers


class _Scheduled(Generic[T]):
    """Shared plumbing: output cell, source subscription, single timer slot."""

    def __init__(self, source: Cell[T], delay: float, timers: Timers | None) -> None:
        if delay < 0:
            raise ValueError(f"delay must not be negative, got {delay}")
        self._source = source
        self.delay = delay
        self._timers = timers if timers is not None else _default_timers
        self._lock = threading.Lock()
        self._handle: TimerHandle | None = None
        self._token: object | None = None
        self._disposed = False
        self.output: Cell[T] = Cell(source.get())
        self._unsubscribe = source.subscribe(self._on_change)

    def get(self) -> T:
        return self.output.get()

    def subscribe(self, listener: Listener) -> Unsubscribe:
        return self.output.subscribe(listener)

    @property
    def pending(self) -> bool:
        return self._token is not None

    def _on_change(self, new: T, old: T) -> None:
        raise NotImplementedError

    def _schedule(self, delay: float, fire: Callable[[object], None]) -> None:
        """Replace the pending timer. Caller holds the lock."""
        self._cancel_pending()
        token = object()
        self._token = token
        self._handle = self._timers.call_later(delay, lambda: fire(token))

    def _cancel_pending(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
        self._handle = None
        self._token = None

    def _claim(self, token: object) -> bool:
        """True if token belongs to the live timer. Clears the slot. Caller holds the lock."""
        if self._disposed or self._token is not token:
            return False
        self._handle = None
        self._token = None
        return True

    def dispose(self) -> None:
        with self._lock:
            self._disposed = True
            self._cancel_pending()
        self._unsubscribe()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(delay={self.delay}, output={self.output.get()!r})"


class Debounced(_Scheduled[T]):
    """Output follows the source once it has been quiet for delay seconds."""

    def _on_change(self, new: T, old: T) -> None:
        with self._lock:
            if self._disposed:
                return
            self._schedule(self.delay, self._fire)

    def _fire(self, token: object) -> None:
        with self._lock:
            if not self._claim(token):
                return
        value = self._source.get()
        logger.debug("Debounced value updated: %r", value)
        self.output.set(value)


class Throttled(_Scheduled[T]):
    """Output changes at most once per delay window; the window's last value is delivered."""

    def __init__(self, source: Cell[T], delay: float, timers: Timers | None) -> None:
        self._last_update: float | None = None
        super().__init__(source, delay, timers)

    def _on_change(self, new: T, old: T) -> None:
        with self._lock:
            if self._disposed:
                return
            now = self._timers.now()
            elapsed = None if self._last_update is None else now - self._last_update
            if elapsed is None or elapsed >= self.delay:
                self._cancel_pending()
                self._last_update = now
                leading = True
            else:
                self._schedule(self.delay - elapsed, functools.partial(self._fire_trailing, new))
                leading = False
        if leading:
            logger.debug("Throttled value updated immediately: %r", new)
            self.output.set(new)

    def _fire_trailing(self, value: T, token: object) -> None:
        with self._lock:
            if not self._claim(token):
                return
            self._last_update = self._timers.now()
        logger.debug("Throttled value updated after delay: %r", value)
        self.output.set(value)


def debounce(source: Cell[T], delay: float | None = None, *, timers: Timers | None = None) -> Debounced[T]:
    """Debounce a cell.

    Usage:
        query = Cell("")
        settled = debounce(query, 0.3)
        settled.subscribe(lambda new, old: search(new))
    """
    if delay is None:
        delay = get_settings().debounce_delay
    return Debounced(source, delay, timers)


def throttle(source: Cell[T], delay: float | None = None, *, timers: Timers | None = None) -> Throttled[T]:
    """Throttle a cell: leading update, then at most one trailing update per window."""
    if delay is None:
        delay = get_settings().throttle_delay
    return Throttled(source, delay, timers)


class DebouncedFunction:
    """Callable wrapper that delays fn until calls stop for delay seconds."""

    def __init__(self, fn: Callable, delay: float, timers: Timers | None) -> None:
        self._fn = fn
        self.delay = delay
        self._timers = timers if timers is not None else _default_timers
        self._lock = threading.Lock()
        self._handle: TimerHandle | None = None
        self._token: object | None = None
        functools.update_wrapper(self, fn)

    def __call__(self, *args, **kwargs) -> None:
        with self._lock:
            self._cancel_pending()
            token = object()
            self._token = token
            self._handle = self._timers.call_later(
                self.delay, lambda: self._fire(token, args, kwargs)
            )

    def _fire(self, token: object, args: tuple, kwargs: dict) -> None:
        with self._lock:
            if self._token is not token:
                return
            self._handle = None
            self._token = None
        logger.debug("Debounced function %s executed with args %r", self._fn.__name__, args)
        self._fn(*args, **kwargs)

    def _cancel_pending(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
        self._handle = None
        self._token = None

    @property
    def pending(self) -> bool:
        return self._token is not None

    def cancel(self) -> None:
        """Drop the pending call, if any."""
        with self._lock:
            self._cancel_pending()


def debounced(fn: Callable | None = None, *, delay: float | None = None, timers: Timers | None = None):
    """Decorator: debounce calls to fn. The latest call's arguments win.

    Usage:
        @debounced(delay=0.5)
        def save(doc):
            ...

        save(a); save(b)  # only save(b) runs, 0.5s later
        save.cancel()     # or drop it
    """

    def decorator(f: Callable) -> DebouncedFunction:
        d = get_settings().debounce_delay if delay is None else delay
        return DebouncedFunction(f, d, timers)

    if fn is not None:
        return decorator(fn)
    return decorator
