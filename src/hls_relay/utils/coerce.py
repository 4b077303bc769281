"""Generic coercion utilities shared across the relay codebase."""
from __future__ import annotations

from typing import Any, List


def to_bool(value: Any, *, allow_blank_false: bool = True) -> bool:
    """Best-effort conversion of common truthy/falsey inputs to ``bool``."""

    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        truthy = {"true", "1", "yes", "on"}
        falsy = {"false", "0", "no", "off"}
        if allow_blank_false:
            falsy.add("")
        if lowered in truthy:
            return True
        if lowered in falsy:
            return False
    return False


def coerce_int(value: Any, fallback: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return fallback


def coerce_float(value: Any, fallback: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return fallback


def to_string_list(value: Any) -> List[str]:
    """Split comma separated strings (or iterables) into trimmed lowercase items."""

    if value is None:
        return []
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple, set, frozenset)):
        items = [str(item) for item in value]
    else:
        items = [str(value)]
    return [item.strip().lower() for item in items if item.strip()]


__all__ = [
    "to_bool",
    "coerce_int",
    "coerce_float",
    "to_string_list",
]
