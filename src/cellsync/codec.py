"""Codecs — paired encode/decode between values and stored strings."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Codec(Generic[T]):
    """encode/decode pair. decode(encode(v)) must equal v for every stored v."""

    encode: Callable[[T], str]
    decode: Callable[[str], T]


def _json_encode(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, allow_nan=False)


JSON_CODEC: Codec[Any] = Codec(encode=_json_encode, decode=json.loads)

STRING_CODEC: Codec[str] = Codec(encode=str, decode=str)
