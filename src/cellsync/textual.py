"""Bridge from cellsync cells to a Textual app. Opt-in, requires textual.

bind() turns a Cell, Derived or scheduler output into a widget effect that
only runs while the app can be queried, always on the app's thread.
install() makes worker-thread Cell.set() calls land on that thread too.

Pause depth per app lives here, keyed by id(app): an app is paused while
its depth is above zero, so pause() blocks may nest.
"""

import threading
from collections import Counter
from contextlib import contextmanager

from textual.css.query import NoMatches

from cellsync.cell import set_scheduler

_pause_depth: Counter[int] = Counter()


@contextmanager
def pause(app):
    """Hold bound effects back while widgets are being replaced."""
    key = id(app)
    _pause_depth[key] += 1
    try:
        yield
    finally:
        _pause_depth[key] -= 1
        if _pause_depth[key] <= 0:
            del _pause_depth[key]


def is_safe(app) -> bool:
    """True when the app is running and not inside pause()."""
    return app.is_running and _pause_depth[id(app)] == 0


def install(app) -> None:
    """Route Cell.set() from worker and timer threads through app.call_from_thread.

    Call from the app's thread, e.g. in on_mount.
    """
    set_scheduler(app.call_from_thread)


def _run_effect(effect, value) -> None:
    # widgets may be gone between notification and effect
    try:
        effect(value)
    except NoMatches:
        pass


def bind(app, cell, effect, *, fire_immediately=False):
    """Call effect(value) whenever cell changes, while the app is safe to query.

    Notifications from other threads are handed to app.call_from_thread.
    Returns the unsubscribe function.
    """
    owner = threading.get_ident()

    def deliver(value):
        if not is_safe(app):
            return
        if threading.get_ident() == owner:
            _run_effect(effect, value)
        else:
            app.call_from_thread(_run_effect, effect, value)

    if fire_immediately:
        deliver(cell.get())
    return cell.subscribe(lambda new, old: deliver(new))
