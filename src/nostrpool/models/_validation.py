"""Shared validation helpers for frozen dataclass models.

Private module, not part of the public API. Used by ``__post_init__``
methods in sibling model modules to enforce runtime types and hex
encodings. Helpers raise plain ``TypeError`` / ``ValueError``; callers
translate them where a domain error is required.
"""

from __future__ import annotations

import string
from typing import Any


_HEX_DIGITS = frozenset(string.hexdigits.lower())


def validate_int(value: Any, name: str, *, minimum: int | None = 0) -> None:
    """Raise if *value* is not an ``int`` (``bool`` excluded) at or above *minimum*."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an int, got {type(value).__name__}")
    if minimum is not None and value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")


def validate_str(value: Any, name: str) -> None:
    """Raise ``TypeError`` if *value* is not a ``str``."""
    if not isinstance(value, str):
        raise TypeError(f"{name} must be a str, got {type(value).__name__}")


def is_lower_hex(value: Any, length: int) -> bool:
    """Return True if *value* is a lowercase hex string of exactly *length* chars."""
    return isinstance(value, str) and len(value) == length and set(value) <= _HEX_DIGITS


def validate_hex(value: Any, name: str, length: int) -> None:
    """Raise if *value* is not a lowercase hex string of *length* characters."""
    validate_str(value, name)
    if not is_lower_hex(value, length):
        raise ValueError(f"{name} must be {length} lowercase hex characters, got {value!r}")
