"""Host key-value stores shared between execution contexts.

A store maps string keys to string values and publishes a StorageEvent on
its `events` stream whenever *another* context changes a key (the writer
itself is not notified, matching browser storage events).

- MemoryStore: in-process. open_context() returns a sibling context over
  the same data, standing in for a second tab.
- SqliteStore: a file on disk shared by every process on the device.
  Writes go to a change log; poll() (or start_watching()) turns rows
  written by other connections into events.
"""

from __future__ import annotations

import logging
import threading
import uuid
import weakref
from abc import ABC, abstractmethod
from dataclasses import dataclass

from sqlalchemy import Column, Engine, Integer, MetaData, Table, Text, create_engine, delete, func, insert, select
from sqlalchemy import event as sa_event
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError

from cellsync.errors import StorageError, StorageWriteError
from cellsync.stream import EventStream

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StorageEvent:
    """A key changed in another context. new_value is None when it was removed."""

    key: str
    old_value: str | None
    new_value: str | None


class KeyValueStore(ABC):
    """String-keyed host store with cross-context change notifications."""

    def __init__(self) -> None:
        self.events: EventStream[StorageEvent] = EventStream()

    @abstractmethod
    def get_item(self, key: str) -> str | None: ...

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        """Store value. Raises StorageWriteError when the host refuses."""

    @abstractmethod
    def remove_item(self, key: str) -> None: ...

    @abstractmethod
    def keys(self) -> list[str]: ...

    def __contains__(self, key: str) -> bool:
        return self.get_item(key) is not None

    def _publish(self, event: StorageEvent) -> None:
        # A failing listener in this context must not reach the writer.
        try:
            self.events.emit(event)
        except Exception:
            logger.exception("Listener for storage key %r raised", event.key)


class _MemoryBackend:
    """Data shared by all contexts of one MemoryStore family."""

    def __init__(self, quota: int | None) -> None:
        self.data: dict[str, str] = {}
        self.quota = quota
        self.lock = threading.RLock()
        self.contexts: weakref.WeakSet[MemoryStore] = weakref.WeakSet()

    def used(self, excluding: str | None = None) -> int:
        return sum(len(k) + len(v) for k, v in self.data.items() if k != excluding)


class MemoryStore(KeyValueStore):
    """In-process store. Contexts opened from it share data and see each other's writes.

    Usage:
        tab_a = MemoryStore()
        tab_b = tab_a.open_context()
        tab_b.events.subscribe(print)
        tab_a.set_item("theme", '"dark"')  # tab_b prints the StorageEvent
    """

    def __init__(self, *, quota: int | None = None, _backend: _MemoryBackend | None = None) -> None:
        super().__init__()
        self._backend = _backend if _backend is not None else _MemoryBackend(quota)
        self._backend.contexts.add(self)

    def open_context(self) -> MemoryStore:
        """Another execution context over the same data."""
        return MemoryStore(_backend=self._backend)

    def get_item(self, key: str) -> str | None:
        with self._backend.lock:
            return self._backend.data.get(key)

    def set_item(self, key: str, value: str) -> None:
        backend = self._backend
        with backend.lock:
            if backend.quota is not None and backend.used(excluding=key) + len(key) + len(value) > backend.quota:
                raise StorageWriteError(key, f"quota of {backend.quota} characters exceeded")
            old = backend.data.get(key)
            backend.data[key] = value
        if old != value:
            self._broadcast(StorageEvent(key, old, value))

    def remove_item(self, key: str) -> None:
        with self._backend.lock:
            old = self._backend.data.pop(key, None)
        if old is not None:
            self._broadcast(StorageEvent(key, old, None))

    def keys(self) -> list[str]:
        with self._backend.lock:
            return list(self._backend.data)

    def clear(self) -> None:
        for key in self.keys():
            self.remove_item(key)

    def _broadcast(self, event: StorageEvent) -> None:
        for context in list(self._backend.contexts):
            if context is not self:
                context._publish(event)


_metadata = MetaData()

_kv = Table(
    "kv",
    _metadata,
    Column("key", Text, primary_key=True),
    Column("value", Text, nullable=False),
)

_changes = Table(
    "changes",
    _metadata,
    Column("seq", Integer, primary_key=True, autoincrement=True),
    Column("key", Text, nullable=False),
    Column("old_value", Text),
    Column("new_value", Text),
    Column("origin", Text, nullable=False),
    sqlite_autoincrement=True,
)

# Change-log rows kept behind the newest one; older rows are pruned on write.
_CHANGE_LOG_LIMIT = 1000


def _create_engine(path: str) -> Engine:
    engine = create_engine(f"sqlite:///{path}", connect_args={"check_same_thread": False})

    @sa_event.listens_for(engine, "connect")
    def _connect(dbapi_connection, connection_record) -> None:
        # Transactions are started by the "begin" hook below, not by pysqlite.
        dbapi_connection.isolation_level = None

    @sa_event.listens_for(engine, "begin")
    def _begin(conn) -> None:
        # Writers take the database lock up front so read-modify-write is atomic across processes.
        conn.exec_driver_sql("BEGIN IMMEDIATE" if conn.get_execution_options().get("immediate") else "BEGIN")

    return engine


class SqliteStore(KeyValueStore):
    """Durable store in a SQLite file, shared by processes on one device.

    Each instance is one execution context. Changes made through other
    instances surface as events after poll(), or automatically once
    start_watching() runs the poller in a daemon thread.
    """

    def __init__(self, path: str) -> None:
        super().__init__()
        self.path = path
        self._origin = uuid.uuid4().hex
        self._lock = threading.Lock()
        self._closed = False
        self._engine = _create_engine(path)
        self._writer = self._engine.execution_options(immediate=True)
        try:
            _metadata.create_all(self._engine)
            with self._engine.connect() as conn:
                self._last_seq: int = conn.execute(
                    select(func.coalesce(func.max(_changes.c.seq), 0))
                ).scalar_one()
        except SQLAlchemyError as e:
            self._engine.dispose()
            raise StorageError("*", f"cannot open {path}: {e}") from e
        self._stop: threading.Event | None = None
        self._watcher: threading.Thread | None = None

    def _check_open(self, key: str, error: type[StorageError] = StorageError) -> None:
        if self._closed:
            raise error(key, f"store {self.path} is closed")

    def get_item(self, key: str) -> str | None:
        self._check_open(key)
        try:
            with self._engine.connect() as conn:
                return conn.execute(select(_kv.c.value).where(_kv.c.key == key)).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StorageError(key, f"sqlite read failed: {e}") from e

    def set_item(self, key: str, value: str) -> None:
        self._write(key, value)

    def remove_item(self, key: str) -> None:
        self._write(key, None)

    def keys(self) -> list[str]:
        self._check_open("*")
        try:
            with self._engine.connect() as conn:
                return list(conn.execute(select(_kv.c.key).order_by(_kv.c.key)).scalars())
        except SQLAlchemyError as e:
            raise StorageError("*", f"sqlite read failed: {e}") from e

    def _write(self, key: str, value: str | None) -> None:
        self._check_open(key, StorageWriteError)
        try:
            with self._writer.begin() as conn:
                old = conn.execute(select(_kv.c.value).where(_kv.c.key == key)).scalar_one_or_none()
                if old == value:
                    return
                if value is None:
                    conn.execute(delete(_kv).where(_kv.c.key == key))
                else:
                    upsert = sqlite_insert(_kv).values(key=key, value=value)
                    conn.execute(
                        upsert.on_conflict_do_update(
                            index_elements=[_kv.c.key], set_={"value": upsert.excluded.value}
                        )
                    )
                result = conn.execute(
                    insert(_changes).values(key=key, old_value=old, new_value=value, origin=self._origin)
                )
                seq = result.inserted_primary_key[0]
                conn.execute(delete(_changes).where(_changes.c.seq < seq - _CHANGE_LOG_LIMIT))
        except SQLAlchemyError as e:
            raise StorageWriteError(key, f"sqlite write failed: {e}") from e

    def poll(self) -> int:
        """Emit events for changes other contexts made since the last poll. Returns the count."""
        self._check_open("*")
        query = select(
            _changes.c.seq, _changes.c.key, _changes.c.old_value, _changes.c.new_value, _changes.c.origin
        ).order_by(_changes.c.seq)
        with self._lock:
            try:
                with self._engine.connect() as conn:
                    rows = conn.execute(query.where(_changes.c.seq > self._last_seq)).all()
            except SQLAlchemyError as e:
                raise StorageError("*", f"sqlite poll failed: {e}") from e
            if rows:
                self._last_seq = rows[-1].seq
        emitted = 0
        for row in rows:
            if row.origin == self._origin:
                continue
            self._publish(StorageEvent(row.key, row.old_value, row.new_value))
            emitted += 1
        return emitted

    def start_watching(self, interval: float = 0.5) -> None:
        """Poll for foreign changes in a daemon thread until close()."""
        if self._watcher is not None:
            return
        stop = threading.Event()

        def _loop() -> None:
            while not stop.wait(interval):
                try:
                    self.poll()
                except StorageError:
                    logger.exception("Polling %s for changes failed", self.path)

        self._stop = stop
        self._watcher = threading.Thread(target=_loop, daemon=True, name=f"cellsync-watch:{self.path}")
        self._watcher.start()

    def close(self) -> None:
        if self._stop is not None:
            self._stop.set()
        if self._watcher is not None and self._watcher is not threading.current_thread():
            self._watcher.join(timeout=2)
        self._watcher = None
        self._stop = None
        self._closed = True
        self.events.dispose()
        self._engine.dispose()

    def __enter__(self) -> SqliteStore:
        return self

    def __exit__(self, *exc) -> None:
        self.close()
