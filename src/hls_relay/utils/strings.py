"""String helper utilities shared across the relay service."""
from __future__ import annotations

import re

_SANITIZE_PATTERN = re.compile(r"[^A-Za-z0-9_-]")


def sanitize_component(value: object, *, fallback: str = "") -> str:
    """Replace every character outside ``[A-Za-z0-9_-]`` with an underscore."""

    text = str(value) if value is not None else ""
    sanitized = _SANITIZE_PATTERN.sub("_", text)
    return sanitized or fallback


__all__ = ["sanitize_component"]
