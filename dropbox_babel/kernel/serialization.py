from __future__ import annotations

import json
from typing import Any, Generic, TypeVar

from pydantic import TypeAdapter

T = TypeVar("T")


class Serializer(Generic[T]):
    """Converts between a typed value and its Babel JSON document.

    Wraps a pydantic ``TypeAdapter`` so the same object works for models,
    lists of models and the Void type (``None``).
    """

    def __init__(self, value_type: Any) -> None:
        self.value_type = value_type
        self._adapter: TypeAdapter[T] = TypeAdapter(value_type)

    def serialize(self, value: T) -> Any:
        return self._adapter.dump_python(
            value,
            mode="json",
            by_alias=True,
            exclude_none=True,
        )

    def deserialize(self, json_value: Any) -> T:
        return self._adapter.validate_python(json_value)

    def __repr__(self) -> str:
        return f"Serializer({self.value_type!r})"


class VoidSerializer(Serializer[None]):
    """Serializer for the Void type: any payload decodes to ``None``."""

    def __init__(self) -> None:
        super().__init__(None)

    def deserialize(self, json_value: Any) -> None:
        return None


VOID_SERIALIZER: Serializer[None] = VoidSerializer()


def dump_json(value: Any) -> bytes:
    """Encode a JSON-able value as UTF-8 bytes (non-ASCII kept as-is)."""
    return json.dumps(value, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


def parse_json(data: bytes | str) -> Any:
    if isinstance(data, bytes):
        data = utf8_decode(data)
    return json.loads(data)


def utf8_decode(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


def ascii_escape(value: str) -> str:
    """Render every non-ASCII code point as ``\\uXXXX``.

    Code points above U+FFFF keep their full hex value (``\\u1f600``),
    no surrogate pairs.
    """
    out = []
    for char in value:
        code_point = ord(char)
        if code_point < 0x80:
            out.append(char)
        else:
            out.append("\\u%04x" % code_point)
    return "".join(out)
