"""Reactive cells — a value slot that notifies its listeners on change.

A Cell holds one value. set() compares the new value with the old one
(identity first, then ==) and, when they differ, calls every subscribed
listener with (new, old) in subscription order.

Thread safety: call set_scheduler() once from the owning thread. After that,
any .set() from another thread (timer callbacks, store watchers) is
marshaled through the scheduler. Owning-thread .set() stays synchronous.
"""

from __future__ import annotations

import itertools
import threading
from typing import Callable, Generic, TypeVar

T = TypeVar("T")

Listener = Callable[[T, T], None]
Unsubscribe = Callable[[], None]

# ─── Auto-marshal ────────────────────────────────────────────────────────────
_scheduler = None
_scheduler_thread = None

# Subscription tokens: itertools.count is thread-safe (C-level GIL atomic)
_token_counter = itertools.count(1)


def set_scheduler(scheduler) -> None:
    """Set the global thread scheduler for cross-thread Cell mutations.

    Call once from the owning thread:
        cellsync.set_scheduler(app.call_from_thread)

    After this, any Cell.set() from another thread is marshaled through
    scheduler. Pass None to go back to direct mutation.
    """
    global _scheduler, _scheduler_thread
    _scheduler = scheduler
    _scheduler_thread = threading.current_thread() if scheduler is not None else None


def run_on_owner(fn: Callable[[], None]) -> None:
    """Run fn now on the owning thread, or marshal it there from any other thread."""
    if _scheduler is not None and threading.current_thread() != _scheduler_thread:
        _scheduler(fn)
    else:
        fn()


class Cell(Generic[T]):
    """A single mutable value with synchronous change notification."""

    __slots__ = ("_value", "_listeners")

    def __init__(self, value: T) -> None:
        self._value = value
        self._listeners: dict[int, Listener] = {}

    def get(self) -> T:
        return self._value

    def set(self, value: T) -> None:
        """Write a new value. Auto-marshals from foreign threads."""
        run_on_owner(lambda v=value: self._set_direct(v))

    def _set_direct(self, value: T) -> None:
        old = self._value
        if old is not value and old != value:
            self._value = value
            self._notify(value, old)

    def _notify(self, new: T, old: T) -> None:
        # Snapshot: listeners added or removed mid-pass only affect later passes.
        for listener in list(self._listeners.values()):
            listener(new, old)

    def subscribe(self, listener: Listener) -> Unsubscribe:
        """Register listener(new, old). Returns a function that removes it."""
        token = next(_token_counter)
        self._listeners[token] = listener

        def _unsubscribe() -> None:
            self._listeners.pop(token, None)

        return _unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def __repr__(self) -> str:
        return f"Cell({self._value!r})"
