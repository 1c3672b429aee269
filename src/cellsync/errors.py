"""Error taxonomy.

Runtime failures (codec, store writes, network, submit handlers) are not
raised to callers: they are logged and turned into reported state or a
Failure outcome. These classes name them. SchemaError and
UnknownFieldError are programming errors and are raised.
"""


class CellSyncError(Exception):
    """Base class for all cellsync errors."""


class StorageError(CellSyncError):
    def __init__(self, key: str, message: str) -> None:
        super().__init__(f"{message} (key={key!r})")
        self.key = key


class StorageCodecError(StorageError):
    """A stored string could not be decoded, or a value could not be encoded."""


class StorageWriteError(StorageError):
    """The host store refused a write (quota, permissions, closed store)."""


class RequestError(CellSyncError):
    pass


class NetworkError(RequestError):
    """The transport failed before a response arrived."""


class RequestTimeoutError(RequestError):
    """The transport did not complete within the request timeout."""


class RequestEncodeError(RequestError):
    """A request body could not be serialized to JSON."""


class SubmitHandlerError(CellSyncError):
    """A form submit handler raised."""


class SchemaError(CellSyncError, ValueError):
    """A form schema is malformed."""


class UnknownFieldError(CellSyncError, KeyError):
    """An operation named a field the form schema does not declare."""

    def __str__(self) -> str:
        return f"unknown field {self.args[0]!r}"
