"""Tests for timer backends."""

import asyncio
import threading

import pytest

from cellsync import AsyncioTimers, ManualTimers, ThreadingTimers


class TestManualTimers:
    def test_nothing_fires_without_advance(self):
        timers = ManualTimers()
        log = []
        timers.call_later(10, lambda: log.append("x"))
        assert log == []
        assert timers.pending_count() == 1

    def test_fires_in_deadline_order(self):
        timers = ManualTimers()
        log = []
        timers.call_later(30, lambda: log.append(("c", timers.now())))
        timers.call_later(10, lambda: log.append(("a", timers.now())))
        timers.call_later(20, lambda: log.append(("b", timers.now())))
        timers.advance(100)
        assert log == [("a", 10), ("b", 20), ("c", 30)]
        assert timers.now() == 100

    def test_cancelled_handle_does_not_fire(self):
        timers = ManualTimers()
        log = []
        handle = timers.call_later(10, lambda: log.append("x"))
        handle.cancel()
        handle.cancel()  # idempotent
        timers.advance(20)
        assert log == []
        assert handle.cancelled
        assert timers.pending_count() == 0

    def test_callbacks_scheduled_while_advancing(self):
        timers = ManualTimers()
        log = []

        def first():
            log.append(timers.now())
            timers.call_later(5, lambda: log.append(timers.now()))

        timers.call_later(10, first)
        timers.advance(100)
        assert log == [10, 15]

    def test_not_yet_due(self):
        timers = ManualTimers(start=1000)
        log = []
        timers.call_later(10, lambda: log.append("x"))
        timers.advance(9)
        assert log == []
        timers.advance(1)
        assert log == ["x"]


class TestThreadingTimers:
    def test_fires(self):
        fired = threading.Event()
        ThreadingTimers().call_later(0.01, fired.set)
        assert fired.wait(timeout=2)

    def test_cancel(self):
        fired = threading.Event()
        handle = ThreadingTimers().call_later(0.05, fired.set)
        handle.cancel()
        assert not fired.wait(timeout=0.15)

    def test_monotonic_clock(self):
        timers = ThreadingTimers()
        assert timers.now() <= timers.now()


class TestAsyncioTimers:
    @pytest.mark.asyncio
    async def test_fires_on_loop(self):
        timers = AsyncioTimers()
        fired = asyncio.Event()
        timers.call_later(0.01, fired.set)
        await asyncio.wait_for(fired.wait(), timeout=2)
        assert timers.loop is asyncio.get_running_loop()

    @pytest.mark.asyncio
    async def test_cancel(self):
        timers = AsyncioTimers()
        log = []
        handle = timers.call_later(0.01, lambda: log.append("x"))
        handle.cancel()
        await asyncio.sleep(0.05)
        assert log == []
