"""
Babel Validators

Constraint checks used by the generated argument and result types.
The assertion hook is swappable so hosts can log instead of failing.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from typing import Any, TypeVar

T = TypeVar("T")

AssertFunc = Callable[[bool, str], None]


def _default_assert(condition: bool, message: str) -> None:
    if not condition:
        raise ValueError(message)


_assert_func: AssertFunc = _default_assert


def set_assert_func(assert_func: AssertFunc | None) -> None:
    """Replace the assertion used by all validators (``None`` restores the default)."""
    global _assert_func
    _assert_func = assert_func or _default_assert


def array_validator(
    value: Sequence[T],
    *,
    min_items: int | None = None,
    max_items: int | None = None,
    item_validator: Callable[[T], Any] | None = None,
) -> None:
    if min_items is not None:
        _assert_func(len(value) >= min_items, f"{value} must have at least {min_items} items")
    if max_items is not None:
        _assert_func(len(value) <= max_items, f"{value} must have at most {max_items} items")
    if item_validator is not None:
        for item in value:
            item_validator(item)


def string_validator(
    value: str,
    *,
    min_length: int | None = None,
    max_length: int | None = None,
    pattern: str | None = None,
) -> None:
    length = len(value)
    if min_length is not None:
        _assert_func(length >= min_length, f'"{value}" must be at least {min_length} characters')
    if max_length is not None:
        _assert_func(length <= max_length, f'"{value}" must be at most {max_length} characters')
    if pattern is not None:
        # patterns must match the entire value
        _assert_func(
            re.fullmatch(pattern, value) is not None,
            f'"{value}" must match pattern "{pattern}"',
        )


def comparable_validator(
    value: Any,
    *,
    min_value: Any = None,
    max_value: Any = None,
) -> None:
    if min_value is not None:
        _assert_func(min_value <= value, f"{value} must be at least {min_value}")
    if max_value is not None:
        _assert_func(max_value >= value, f"{value} must be at most {max_value}")


def nullable_validator(internal_validator: Callable[[T], Any], value: T | None) -> None:
    if value is not None:
        internal_validator(value)


def binary_validator(
    value: bytes,
    *,
    min_length: int | None = None,
    max_length: int | None = None,
) -> None:
    length = len(value)
    if min_length is not None:
        _assert_func(length >= min_length, f"{value!r} must be at least {min_length} bytes")
    if max_length is not None:
        _assert_func(length <= max_length, f"{value!r} must be at most {max_length} bytes")
