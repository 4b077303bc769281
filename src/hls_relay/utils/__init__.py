"""Utility helpers shared across the relay service."""
from __future__ import annotations

from .coerce import coerce_float, coerce_int, to_bool, to_string_list
from .strings import sanitize_component
from .urls import ensure_trailing_slash

__all__ = [
    "coerce_float",
    "coerce_int",
    "to_bool",
    "to_string_list",
    "sanitize_component",
    "ensure_trailing_slash",
]
