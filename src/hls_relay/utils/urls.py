"""URL manipulation helpers."""
from __future__ import annotations


def ensure_trailing_slash(url: str | None) -> str | None:
    if not url:
        return None
    trimmed = url.strip()
    if not trimmed:
        return None
    return trimmed.rstrip("/") + "/"


__all__ = ["ensure_trailing_slash"]
