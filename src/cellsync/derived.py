"""Derived cells — read-only state computed from explicitly listed sources.

A Derived wraps a function and the cells it depends on. It subscribes to
each source directly; when any of them notifies, the function is
re-evaluated and the result stored. Listeners of the Derived only hear
about results that actually changed.

Evaluation is eager: the value is always current, so get() never computes.
"""

from __future__ import annotations

from typing import Callable, Generic, TypeVar

from cellsync.cell import Cell, Listener, Unsubscribe

T = TypeVar("T")


class Derived(Generic[T]):
    """A value computed from source cells, recomputed on their notifications."""

    __slots__ = ("_fn", "_cell", "_unsubscribers")

    def __init__(self, fn: Callable[[], T], *sources) -> None:
        self._fn = fn
        self._cell: Cell[T] = Cell(fn())
        self._unsubscribers: list[Unsubscribe] = [
            source.subscribe(self._on_source_change) for source in sources
        ]

    def get(self) -> T:
        return self._cell.get()

    def subscribe(self, listener: Listener) -> Unsubscribe:
        return self._cell.subscribe(listener)

    def _on_source_change(self, new, old) -> None:
        self._cell._set_direct(self._fn())

    def dispose(self) -> None:
        """Disconnect from all sources. The value is frozen at its last result."""
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

    def __repr__(self) -> str:
        return f"Derived({getattr(self._fn, '__name__', 'fn')}, {self._cell.get()!r})"


def derived(*sources) -> Callable[[Callable[[], T]], Derived[T]]:
    """Decorator to create a Derived over the given sources.

    Usage:
        first = Cell("Ada")
        last = Cell("Lovelace")

        @derived(first, last)
        def full_name():
            return f"{first.get()} {last.get()}"

        full_name.get()  # "Ada Lovelace"
        first.set("Augusta")
        full_name.get()  # "Augusta Lovelace"
    """

    def decorator(fn: Callable[[], T]) -> Derived[T]:
        return Derived(fn, *sources)

    return decorator
