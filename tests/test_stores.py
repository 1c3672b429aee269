"""Tests for MemoryStore and SqliteStore."""

import logging
import time

import pytest

from cellsync import MemoryStore, SqliteStore, StorageError, StorageEvent, StorageWriteError


class TestMemoryStore:
    def test_get_set_remove(self):
        store = MemoryStore()
        assert store.get_item("k") is None
        store.set_item("k", "v")
        assert store.get_item("k") == "v"
        assert "k" in store
        store.remove_item("k")
        assert store.get_item("k") is None

    def test_contexts_share_data(self):
        tab_a = MemoryStore()
        tab_b = tab_a.open_context()
        tab_a.set_item("k", "1")
        assert tab_b.get_item("k") == "1"
        assert tab_b.keys() == ["k"]

    def test_writer_is_not_notified(self):
        tab_a = MemoryStore()
        tab_b = tab_a.open_context()
        seen_a, seen_b = [], []
        tab_a.events.subscribe(seen_a.append)
        tab_b.events.subscribe(seen_b.append)

        tab_a.set_item("k", "1")
        assert seen_a == []
        assert seen_b == [StorageEvent("k", None, "1")]

    def test_remove_notifies_with_none(self):
        tab_a = MemoryStore()
        tab_b = tab_a.open_context()
        tab_a.set_item("k", "1")
        seen = []
        tab_b.events.subscribe(seen.append)
        tab_a.remove_item("k")
        assert seen == [StorageEvent("k", "1", None)]

    def test_unchanged_write_is_silent(self):
        tab_a = MemoryStore()
        tab_b = tab_a.open_context()
        tab_a.set_item("k", "1")
        seen = []
        tab_b.events.subscribe(seen.append)
        tab_a.set_item("k", "1")
        assert seen == []

    def test_quota(self):
        store = MemoryStore(quota=10)
        store.set_item("k", "12345")
        with pytest.raises(StorageWriteError):
            store.set_item("other", "123456")
        # replacing an existing key only counts the new value
        store.set_item("k", "12345678")
        assert store.get_item("k") == "12345678"

    def test_clear(self):
        store = MemoryStore()
        store.set_item("a", "1")
        store.set_item("b", "2")
        store.clear()
        assert store.keys() == []


class TestSqliteStore:
    def test_get_set_remove(self, tmp_path):
        with SqliteStore(str(tmp_path / "kv.db")) as store:
            store.set_item("k", "v")
            assert store.get_item("k") == "v"
            store.remove_item("k")
            assert store.get_item("k") is None

    def test_durable_across_connections(self, tmp_path):
        path = str(tmp_path / "kv.db")
        with SqliteStore(path) as store:
            store.set_item("k", "v")
        with SqliteStore(path) as store:
            assert store.get_item("k") == "v"
            assert store.keys() == ["k"]

    def test_poll_reports_foreign_writes_only(self, tmp_path):
        path = str(tmp_path / "kv.db")
        with SqliteStore(path) as tab_a, SqliteStore(path) as tab_b:
            seen_a, seen_b = [], []
            tab_a.events.subscribe(seen_a.append)
            tab_b.events.subscribe(seen_b.append)

            tab_a.set_item("k", "1")
            tab_a.remove_item("k")

            assert tab_a.poll() == 0
            assert tab_b.poll() == 2
            assert seen_a == []
            assert seen_b == [StorageEvent("k", None, "1"), StorageEvent("k", "1", None)]
            assert tab_b.poll() == 0

    def test_history_before_open_is_not_replayed(self, tmp_path):
        path = str(tmp_path / "kv.db")
        with SqliteStore(path) as tab_a:
            tab_a.set_item("k", "1")
            with SqliteStore(path) as tab_b:
                assert tab_b.poll() == 0

    def test_watching_thread(self, tmp_path):
        path = str(tmp_path / "kv.db")
        with SqliteStore(path) as tab_a, SqliteStore(path) as tab_b:
            seen = []
            tab_b.events.subscribe(seen.append)
            tab_b.start_watching(interval=0.01)
            tab_a.set_item("k", "1")
            deadline = time.monotonic() + 2
            while not seen and time.monotonic() < deadline:
                time.sleep(0.01)
            assert seen == [StorageEvent("k", None, "1")]

    def test_write_after_close_raises_write_error(self, tmp_path):
        store = SqliteStore(str(tmp_path / "kv.db"))
        store.close()
        with pytest.raises(StorageWriteError):
            store.set_item("k", "v")

    def test_reads_after_close_raise_storage_error(self, tmp_path):
        store = SqliteStore(str(tmp_path / "kv.db"))
        store.set_item("k", "v")
        store.close()
        with pytest.raises(StorageError):
            store.keys()
        with pytest.raises(StorageError):
            store.get_item("k")
        with pytest.raises(StorageError):
            store.poll()

    def test_unchanged_write_adds_no_change_row(self, tmp_path):
        path = str(tmp_path / "kv.db")
        with SqliteStore(path) as tab_a, SqliteStore(path) as tab_b:
            tab_a.set_item("k", "1")
            tab_a.set_item("k", "1")
            tab_a.set_item("k", "2")
            seen = []
            tab_b.events.subscribe(seen.append)
            assert tab_b.poll() == 2
            assert seen == [StorageEvent("k", None, "1"), StorageEvent("k", "1", "2")]

    def test_failing_listener_does_not_stop_poll(self, tmp_path, caplog):
        path = str(tmp_path / "kv.db")
        with SqliteStore(path) as tab_a, SqliteStore(path) as tab_b:

            def explode(event):
                raise RuntimeError("bad listener")

            tab_b.events.subscribe(explode)
            tab_a.set_item("a", "1")
            tab_a.set_item("b", "2")
            with caplog.at_level(logging.ERROR, logger="cellsync.stores"):
                assert tab_b.poll() == 2
            assert "bad listener" in caplog.text


class TestMemoryStoreListeners:
    def test_failing_listener_does_not_reach_writer(self, caplog):
        tab_a = MemoryStore()
        tab_b = tab_a.open_context()
        tab_c = tab_a.open_context()
        seen = []

        def explode(event):
            raise RuntimeError("bad listener")

        tab_b.events.subscribe(explode)
        tab_c.events.subscribe(seen.append)
        with caplog.at_level(logging.ERROR, logger="cellsync.stores"):
            tab_a.set_item("k", "1")
        assert tab_a.get_item("k") == "1"
        assert seen == [StorageEvent("k", None, "1")]
        assert "bad listener" in caplog.text
