"""Storage channels — a Cell mirrored to one key of a host store.

Local writes flow cell -> store: every change is encoded and stored, and
setting None removes the key. Writes from other contexts flow store -> cell
through the store's event stream, filtered to this key. An import from the
store never writes back (echo guard).

Failures never reach the caller. Decode/encode problems and refused writes
are logged and published on channel.error; the in-memory value stays
authoritative and nothing is retried.
"""

from __future__ import annotations

import logging
from typing import Any, Generic, TypeVar

from cellsync.cell import Cell, Listener, Unsubscribe, run_on_owner
from cellsync.codec import JSON_CODEC, Codec
from cellsync.errors import StorageCodecError, StorageError
from cellsync.stores import KeyValueStore, StorageEvent

T = TypeVar("T")

logger = logging.getLogger(__name__)


class StorageChannel(Generic[T]):
    """Bidirectional bridge between a Cell and one key of a KeyValueStore.

    Usage:
        store = MemoryStore()
        theme = StorageChannel(store, "theme", default="light")
        theme.set_value("dark")      # store["theme"] == '"dark"'
        theme.remove()               # key removed, cell is None
        theme.dispose()
    """

    def __init__(
        self,
        store: KeyValueStore,
        key: str,
        default: T | None = None,
        *,
        codec: Codec[T] = JSON_CODEC,
    ) -> None:
        self._store = store
        self.key = key
        self.default = default
        self._codec = codec
        self._importing = False
        self._disposed = False
        self.error: Cell[StorageError | None] = Cell(None)
        self.cell: Cell[T | None] = Cell(self._read())
        self._unsubscribe_cell = self.cell.subscribe(self._on_local_change)
        self._events = store.events.filter(lambda e: e.key == key)
        self._events.subscribe(lambda e: run_on_owner(lambda: self._on_external_change(e)))

    # --- Reads ---

    def get(self) -> T | None:
        return self.cell.get()

    def subscribe(self, listener: Listener) -> Unsubscribe:
        return self.cell.subscribe(listener)

    def _read(self) -> T | None:
        try:
            raw = self._store.get_item(self.key)
        except StorageError as e:
            self._report(e)
            return self.default
        if raw is None:
            return self.default
        try:
            return self._codec.decode(raw)
        except Exception as e:
            self._report(StorageCodecError(self.key, f"cannot decode stored value {raw!r}: {e}"))
            return self.default

    # --- Writes ---

    def set_value(self, value: T | None) -> None:
        self.cell.set(value)

    def remove(self) -> None:
        """Clear the cell and drop the key from the store."""
        if self.cell.get() is None:
            # cell already empty: no notification, so remove the key directly
            self._remove_key()
        else:
            self.cell.set(None)

    def _on_local_change(self, new: T | None, old: T | None) -> None:
        if self._importing or self._disposed:
            return
        if new is None:
            self._remove_key()
            return
        try:
            encoded = self._codec.encode(new)
        except Exception as e:
            self._report(StorageCodecError(self.key, f"cannot encode {new!r}: {e}"))
            return
        try:
            self._store.set_item(self.key, encoded)
        except StorageError as e:
            self._report(e)
            return
        logger.debug("Saved to store [%s]: %r", self.key, new)

    def _remove_key(self) -> None:
        try:
            self._store.remove_item(self.key)
        except StorageError as e:
            self._report(e)
            return
        logger.debug("Removed store key: %s", self.key)

    # --- Cross-context ---

    def _encoded_current(self) -> str | None:
        value = self.cell.get()
        if value is None:
            return None
        try:
            return self._codec.encode(value)
        except Exception:
            return None

    def _on_external_change(self, event: StorageEvent) -> None:
        if self._disposed or event.new_value == self._encoded_current():
            return
        if event.new_value is None:
            value = self.default
        else:
            try:
                value = self._codec.decode(event.new_value)
            except Exception as e:
                self._report(
                    StorageCodecError(self.key, f"cannot decode update {event.new_value!r}: {e}")
                )
                return
        self._importing = True
        try:
            self.cell.set(value)
        finally:
            self._importing = False
        logger.debug("Store updated from another context [%s]: %r", self.key, value)

    # --- Lifecycle ---

    def _report(self, error: StorageError) -> None:
        logger.warning("%s", error)
        self.error.set(error)

    def dispose(self) -> None:
        """Stop mirroring. The cell keeps its last value."""
        self._disposed = True
        self._unsubscribe_cell()
        self._events.dispose()

    def __repr__(self) -> str:
        return f"StorageChannel({self.key!r}, {self.cell.get()!r})"


class ObjectChannel(StorageChannel[dict[str, Any]]):
    """StorageChannel for a dict value with shallow-merge updates."""

    def __init__(self, store: KeyValueStore, key: str, default: dict[str, Any], *, codec=JSON_CODEC) -> None:
        super().__init__(store, key, default, codec=codec)

    def update(self, **changes: Any) -> None:
        current = self.cell.get() or {}
        self.set_value({**current, **changes})
        logger.debug("Updated stored object [%s]: %r", self.key, changes)
