"""Form — schema-declared fields held in Cells, with derived validity state.

Each declared field owns a Cell[FieldState]. Aggregates (is_valid,
is_dirty, errors, touched_fields, values) are Derived cells subscribed to
every field cell, so they stay current and notify only on change.

Feedback is deferred until interaction: set_field_value() re-validates a
field only once it has been touched. set_field_touched() and
validate_form() are the points where errors first appear.

The field set is fixed at construction. Unknown names raise
UnknownFieldError; a malformed schema raises SchemaError.
"""

from __future__ import annotations

import copy
import inspect
import logging
import re
from collections.abc import Mapping, Sized
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Awaitable, Callable

from cellsync.cell import Cell
from cellsync.derived import Derived
from cellsync.errors import SchemaError, SubmitHandlerError, UnknownFieldError

logger = logging.getLogger(__name__)

CustomRule = Callable[[Any], "str | None"]


@dataclass(frozen=True)
class Rules:
    required: bool = False
    min_length: int | None = None
    max_length: int | None = None
    pattern: re.Pattern | None = None
    custom: CustomRule | None = None


@dataclass(frozen=True)
class FieldSpec:
    initial_value: Any = ""
    rules: Rules = field(default_factory=Rules)


@dataclass(frozen=True)
class FieldState:
    value: Any
    error: str | None = None
    touched: bool = False
    dirty: bool = False


_FIELD_KEYS = {"initial_value": "initial_value", "initialValue": "initial_value", "rules": "rules"}
_RULE_KEYS = {
    "required": "required",
    "min_length": "min_length",
    "minLength": "min_length",
    "max_length": "max_length",
    "maxLength": "max_length",
    "pattern": "pattern",
    "custom": "custom",
}


def _parse_rules(name: str, raw: Rules | Mapping[str, Any] | None) -> Rules:
    if raw is None:
        return Rules()
    if isinstance(raw, Rules):
        return raw
    if not isinstance(raw, Mapping):
        raise SchemaError(f"{name}: rules must be a mapping, got {type(raw).__name__}")
    kwargs: dict[str, Any] = {}
    for key, value in raw.items():
        if key not in _RULE_KEYS:
            raise SchemaError(f"{name}: unknown rule {key!r}")
        kwargs[_RULE_KEYS[key]] = value
    for bound in ("min_length", "max_length"):
        value = kwargs.get(bound)
        if value is not None and (not isinstance(value, int) or isinstance(value, bool) or value < 0):
            raise SchemaError(f"{name}: {bound} must be a non-negative int, got {value!r}")
    pattern = kwargs.get("pattern")
    if isinstance(pattern, str):
        try:
            kwargs["pattern"] = re.compile(pattern)
        except re.error as e:
            raise SchemaError(f"{name}: invalid pattern {pattern!r}: {e}") from e
    elif pattern is not None and not isinstance(pattern, re.Pattern):
        raise SchemaError(f"{name}: pattern must be a string or compiled regex")
    custom = kwargs.get("custom")
    if custom is not None and not callable(custom):
        raise SchemaError(f"{name}: custom rule must be callable")
    kwargs["required"] = bool(kwargs.get("required", False))
    return Rules(**kwargs)


def _parse_field(name: str, raw: FieldSpec | Mapping[str, Any] | None) -> FieldSpec:
    if raw is None:
        return FieldSpec()
    if isinstance(raw, FieldSpec):
        return raw
    if not isinstance(raw, Mapping):
        raise SchemaError(f"{name}: field spec must be a mapping, got {type(raw).__name__}")
    kwargs: dict[str, Any] = {}
    for key, value in raw.items():
        if key not in _FIELD_KEYS:
            raise SchemaError(f"{name}: unknown field option {key!r}")
        kwargs[_FIELD_KEYS[key]] = value
    if kwargs.get("initial_value") is None:
        kwargs.pop("initial_value", None)
    kwargs["rules"] = _parse_rules(name, kwargs.get("rules"))
    return FieldSpec(**kwargs)


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, Sized):
        return len(value) == 0
    return False


def _length(value: Any) -> int:
    if isinstance(value, Sized):
        return len(value)
    return len(str(value))


class Form:
    """Fields, validation and submission state for one declarative schema.

    Usage:
        form = Form({
            "name": {"rules": {"required": True, "min_length": 2}},
            "email": {"rules": {"pattern": r"^[^@\\s]+@[^@\\s]+$"}},
        })
        form.set_field_value("name", "A")
        form.set_field_touched("name")
        form.errors.get()   # {"name": "name must be at least 2 characters"}
        form.submit_form(save)  # False, save not called
    """

    def __init__(self, schema: Mapping[str, FieldSpec | Mapping[str, Any] | None]) -> None:
        if not isinstance(schema, Mapping):
            raise SchemaError(f"schema must be a mapping, got {type(schema).__name__}")
        self._specs: dict[str, FieldSpec] = {}
        for name, raw in schema.items():
            if not isinstance(name, str) or not name:
                raise SchemaError(f"field names must be non-empty strings, got {name!r}")
            self._specs[name] = _parse_field(name, raw)

        self.fields: Mapping[str, Cell[FieldState]] = MappingProxyType(
            {name: Cell(self._initial_state(name)) for name in self._specs}
        )
        self.is_submitting: Cell[bool] = Cell(False)
        self.submit_count: Cell[int] = Cell(0)
        self.submit_error: Cell[SubmitHandlerError | None] = Cell(None)

        cells = tuple(self.fields.values())
        self.is_valid: Derived[bool] = Derived(
            lambda: all(f.error is None for f in self._states()), *cells
        )
        self.is_dirty: Derived[bool] = Derived(lambda: any(f.dirty for f in self._states()), *cells)
        self.errors: Derived[dict[str, str]] = Derived(
            lambda: {n: c.get().error for n, c in self.fields.items() if c.get().error is not None},
            *cells,
        )
        self.touched_fields: Derived[list[str]] = Derived(
            lambda: [n for n, c in self.fields.items() if c.get().touched], *cells
        )
        self.values: Derived[dict[str, Any]] = Derived(
            lambda: {n: c.get().value for n, c in self.fields.items()}, *cells
        )

    # --- Field access ---

    def _states(self):
        return (c.get() for c in self.fields.values())

    def _initial_state(self, name: str) -> FieldState:
        return FieldState(value=copy.deepcopy(self._specs[name].initial_value))

    def _cell(self, name: str) -> Cell[FieldState]:
        try:
            return self.fields[name]
        except KeyError:
            raise UnknownFieldError(name) from None

    def field_state(self, name: str) -> FieldState:
        return self._cell(name).get()

    @property
    def field_names(self) -> list[str]:
        return list(self._specs)

    # --- Validation ---

    def validate_field(self, name: str, value: Any) -> str | None:
        """First failing rule's message, in order required, min_length, max_length, pattern, custom."""
        if name not in self._specs:
            raise UnknownFieldError(name)
        rules = self._specs[name].rules

        if _is_empty(value):
            return f"{name} is required" if rules.required else None

        if rules.min_length is not None and _length(value) < rules.min_length:
            return f"{name} must be at least {rules.min_length} characters"

        if rules.max_length is not None and _length(value) > rules.max_length:
            return f"{name} must be no more than {rules.max_length} characters"

        if rules.pattern is not None and not rules.pattern.search(str(value)):
            return f"{name} format is invalid"

        if rules.custom is not None:
            try:
                return rules.custom(value) or None
            except Exception:
                logger.exception("Custom rule for field %s raised", name)
                return f"{name} is invalid"

        return None

    def set_field_value(self, name: str, value: Any) -> None:
        cell = self._cell(name)
        state = cell.get()
        error = self.validate_field(name, value) if state.touched else state.error
        dirty = value != self._specs[name].initial_value
        cell.set(replace(state, value=value, dirty=dirty, error=error))
        logger.debug("Field %s updated: %r -> %r", name, state.value, value)

    def set_field_touched(self, name: str, touched: bool = True) -> None:
        cell = self._cell(name)
        state = cell.get()
        error = self.validate_field(name, state.value) if touched else state.error
        cell.set(replace(state, touched=touched, error=error))

    def set_field_error(self, name: str, error: str | None) -> None:
        """Set an error directly, e.g. one reported by a server."""
        cell = self._cell(name)
        cell.set(replace(cell.get(), error=error))

    def validate_form(self) -> bool:
        """Validate and touch every field. True when no field has an error."""
        for name, cell in self.fields.items():
            state = cell.get()
            cell.set(replace(state, error=self.validate_field(name, state.value), touched=True))
        valid = self.is_valid.get()
        logger.debug("Form validation result: valid=%s errors=%r", valid, self.errors.get())
        return valid

    # --- Submission ---

    def _begin_submit(self) -> bool:
        self.submit_count.set(self.submit_count.get() + 1)
        self.submit_error.set(None)
        if not self.validate_form():
            logger.warning("Form submission blocked due to validation errors: %r", self.errors.get())
            return False
        self.is_submitting.set(True)
        return True

    def _submit_failed(self, exc: Exception) -> None:
        error = SubmitHandlerError(f"submit handler raised {type(exc).__name__}: {exc}")
        error.__cause__ = exc
        logger.exception("Form submission error")
        self.submit_error.set(error)

    def submit_form(self, handler: Callable[[dict[str, Any]], Any]) -> bool:
        """Validate, then call handler(values). True if the handler returned without raising.

        For coroutine handlers use submit_form_async().
        """
        if not self._begin_submit():
            return False
        try:
            result = handler(dict(self.values.get()))
            if inspect.isawaitable(result):
                if inspect.iscoroutine(result):
                    result.close()
                raise TypeError("handler returned an awaitable; use submit_form_async()")
        except Exception as e:
            self._submit_failed(e)
            return False
        finally:
            self.is_submitting.set(False)
        logger.debug("Form submitted successfully: %r", self.values.get())
        return True

    async def submit_form_async(self, handler: Callable[[dict[str, Any]], Awaitable[Any] | Any]) -> bool:
        """submit_form() for handlers that may return an awaitable."""
        if not self._begin_submit():
            return False
        try:
            result = handler(dict(self.values.get()))
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            self._submit_failed(e)
            return False
        finally:
            self.is_submitting.set(False)
        logger.debug("Form submitted successfully: %r", self.values.get())
        return True

    # --- Lifecycle ---

    def reset_form(self) -> None:
        """Every field back to its declared initial value; counters cleared."""
        for name, cell in self.fields.items():
            cell.set(self._initial_state(name))
        self.is_submitting.set(False)
        self.submit_count.set(0)
        self.submit_error.set(None)
        logger.debug("Form reset to initial state")

    def dispose(self) -> None:
        for d in (self.is_valid, self.is_dirty, self.errors, self.touched_fields, self.values):
            d.dispose()

    def __repr__(self) -> str:
        return f"Form({self.field_names!r}, valid={self.is_valid.get()})"
