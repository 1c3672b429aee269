"""cellsync: reactive cells kept in sync with clocks, host stores, forms and HTTP."""

from importlib.metadata import version as _version

__version__ = _version("cellsync")

from cellsync.cell import Cell, set_scheduler
from cellsync.derived import Derived, derived
from cellsync.timers import AsyncioTimers, ManualTimers, ThreadingTimers, TimerHandle
from cellsync.schedule import Debounced, Throttled, debounce, debounced, throttle, set_default_timers
from cellsync.codec import Codec, JSON_CODEC, STRING_CODEC
from cellsync.stores import KeyValueStore, MemoryStore, SqliteStore, StorageEvent
from cellsync.storage import ObjectChannel, StorageChannel
from cellsync.form import FieldSpec, FieldState, Form, Rules
from cellsync.request import Failure, RequestManager, RequestOutcome, Success
from cellsync.counter import Counter
from cellsync.config import Settings, configure, get_settings
from cellsync.stream import EventStream
from cellsync.errors import (
    CellSyncError,
    NetworkError,
    RequestEncodeError,
    RequestTimeoutError,
    SchemaError,
    StorageCodecError,
    StorageError,
    StorageWriteError,
    SubmitHandlerError,
    UnknownFieldError,
)
# textual NOT auto-imported: opt-in only

__all__ = [
    "Cell",
    "set_scheduler",
    "Derived",
    "derived",
    "AsyncioTimers",
    "ManualTimers",
    "ThreadingTimers",
    "TimerHandle",
    "Debounced",
    "Throttled",
    "debounce",
    "debounced",
    "throttle",
    "set_default_timers",
    "Codec",
    "JSON_CODEC",
    "STRING_CODEC",
    "KeyValueStore",
    "MemoryStore",
    "SqliteStore",
    "StorageEvent",
    "StorageChannel",
    "ObjectChannel",
    "FieldSpec",
    "FieldState",
    "Form",
    "Rules",
    "Failure",
    "RequestManager",
    "RequestOutcome",
    "Success",
    "Counter",
    "Settings",
    "configure",
    "get_settings",
    "EventStream",
    "CellSyncError",
    "NetworkError",
    "RequestEncodeError",
    "RequestTimeoutError",
    "SchemaError",
    "StorageCodecError",
    "StorageError",
    "StorageWriteError",
    "SubmitHandlerError",
    "UnknownFieldError",
]
