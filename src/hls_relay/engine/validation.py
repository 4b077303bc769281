"""Validation of source locators and session identifiers."""
from __future__ import annotations

from typing import Iterable, Optional
from urllib.parse import urlsplit

from ..utils import sanitize_component
from .errors import InvalidInput

DEFAULT_ALLOWED_SCHEMES = frozenset({"http", "https", "rtmp", "rtsp"})


def is_valid_source_locator(locator: object, allowed_schemes: Optional[Iterable[str]] = None) -> bool:
    """Return whether ``locator`` is an absolute URI with an allowed scheme and a host."""

    if not isinstance(locator, str) or not locator.strip():
        return False
    schemes = frozenset(allowed_schemes) if allowed_schemes is not None else DEFAULT_ALLOWED_SCHEMES
    try:
        parts = urlsplit(locator.strip())
    except ValueError:
        return False
    if parts.scheme.lower() not in schemes:
        return False
    return bool(parts.netloc)


def validate_source_locator(locator: object, allowed_schemes: Optional[Iterable[str]] = None) -> str:
    if locator is None or (isinstance(locator, str) and not locator.strip()):
        raise InvalidInput("source URL is required")
    if not is_valid_source_locator(locator, allowed_schemes):
        raise InvalidInput("Invalid source URL format")
    return str(locator).strip()


def normalize_session_id(raw_id: object) -> str:
    """Return the filesystem-safe token for ``raw_id``.

    Characters outside ``[A-Za-z0-9_-]`` become underscores, so ``"cam 1"`` and
    ``"cam/1"`` both map to ``"cam_1"``.
    """

    if raw_id is None:
        raise InvalidInput("stream id is required")
    text = str(raw_id).strip()
    if not text:
        raise InvalidInput("stream id is required")
    return sanitize_component(text)


__all__ = [
    "DEFAULT_ALLOWED_SCHEMES",
    "is_valid_source_locator",
    "normalize_session_id",
    "validate_source_locator",
]
