"""Shared validation helpers for model dataclasses.

Private module, not part of the public API. Used by ``__post_init__`` and
``from_dict`` methods in sibling model modules to enforce runtime type
constraints before a ring or identity record can exist.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from rfc3986 import uri_reference
from rfc3986.exceptions import ValidationError
from rfc3986.validators import Validator

from .constants import RATING_MAX, RATING_MIN


_RING_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")

_URL_VALIDATOR = (
    Validator()
    .require_presence_of("scheme", "host")
    .allow_schemes("http", "https")
    .check_validity_of("scheme", "host", "port")
)


def validate_instance(value: Any, expected: type, name: str) -> None:
    """Raise ``TypeError`` if *value* is not an instance of *expected*."""
    if not isinstance(value, expected):
        article = "an" if expected.__name__[0] in "AEIOUaeiou" else "a"
        raise TypeError(f"{name} must be {article} {expected.__name__}, got {type(value).__name__}")


def validate_timestamp(value: Any, name: str) -> None:
    """Raise if *value* is not a non-negative ``int`` (``bool`` excluded)."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an int, got {type(value).__name__}")
    if value < 0:
        raise ValueError(f"{name} must be non-negative")


def validate_str_no_null(value: Any, name: str) -> None:
    """Raise if *value* is not a ``str`` or contains null bytes."""
    if not isinstance(value, str):
        raise TypeError(f"{name} must be a str, got {type(value).__name__}")
    if "\x00" in value:
        raise ValueError(f"{name} contains null bytes")


def validate_str_not_empty(value: Any, name: str) -> None:
    """Raise if *value* is not a non-empty ``str`` without null bytes."""
    validate_str_no_null(value, name)
    if not value.strip():
        raise ValueError(f"{name} must not be empty")


def validate_url(value: Any, name: str, *, allow_empty: bool = False) -> None:
    """Raise if *value* is not an absolute ``http``/``https`` URL.

    Args:
        value: Candidate URL.
        name: Field name for error messages.
        allow_empty: Accept ``""`` for optional URL fields.
    """
    validate_str_no_null(value, name)
    if not value and allow_empty:
        return
    try:
        _URL_VALIDATOR.validate(uri_reference(value))
    except ValidationError as e:
        raise ValueError(f"{name} is not a valid http(s) URL: {value!r}") from e


def validate_ring_id(value: Any, name: str = "ring_id") -> None:
    """Raise if *value* is not a URL-safe slug (letters, digits, ``_`` and ``-``)."""
    validate_str_no_null(value, name)
    if not _RING_ID_PATTERN.match(value):
        raise ValueError(f"{name} must match [a-zA-Z0-9_-]+, got {value!r}")


def validate_rating(value: Any, name: str = "rating") -> None:
    """Raise if *value* is not an ``int`` in the closed rating range."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an int, got {type(value).__name__}")
    if not RATING_MIN <= value <= RATING_MAX:
        raise ValueError(f"{name} must be between {RATING_MIN} and {RATING_MAX}, got {value}")


def validate_ratings(value: Any, name: str = "ratings") -> None:
    """Raise unless *value* maps non-empty rater URLs to valid ratings."""
    if not isinstance(value, Mapping):
        raise TypeError(f"{name} must be a Mapping, got {type(value).__name__}")
    for rater, rating in value.items():
        validate_str_not_empty(rater, f"{name} key")
        validate_rating(rating, f"{name}[{rater!r}]")
