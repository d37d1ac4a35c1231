"""
Validation of inbound session events.

Every predicate here is pure: it looks at a value and answers whether it may enter session
state. The coordinator runs them before submitting any mutation, so a rejected event never
changes anything.
"""

from __future__ import annotations

import math
import re

from aiosyncroom.models import MediaRef, Provider

SESSION_ID_LENGTH = 8
SESSION_ID_PATTERN = re.compile(rf"[A-Za-z0-9-]{{{SESSION_ID_LENGTH}}}")

NAME_MIN_LENGTH = 1
NAME_MAX_LENGTH = 30
CHAT_MIN_LENGTH = 1
CHAT_MAX_LENGTH = 500
MEDIA_ID_MAX_LENGTH = 100
TITLE_MAX_LENGTH = 200
THUMBNAIL_MAX_LENGTH = 500
ARTIST_MAX_LENGTH = 100
ENTRY_ID_MAX_LENGTH = 64

MAX_POSITION_SECONDS = 7 * 24 * 3600.0
"""Upper bound for positions, one week covers any finite media item."""

_HTML_ESCAPES = {
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
    "'": "&#x27;",
    "/": "&#x2F;",
}
_HTML_ESCAPE_RE = re.compile("[&<>\"'/]")


def is_valid_string(value: object, min_length: int, max_length: int) -> bool:
    """Check that ``value`` is a string whose trimmed length is within bounds."""
    if not isinstance(value, str):
        return False
    return min_length <= len(value.strip()) <= max_length


def is_valid_number(
    value: object, min_value: float = 0.0, max_value: float = MAX_POSITION_SECONDS
) -> bool:
    """Check that ``value`` is a finite real number within bounds."""
    # bool is a subclass of int but never a number on the wire
    if isinstance(value, bool) or not isinstance(value, int | float):
        return False
    if not math.isfinite(value):
        return False
    return min_value <= value <= max_value


def is_valid_index(value: object) -> bool:
    """Check that ``value`` is a non-negative integer."""
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def is_valid_bool(value: object) -> bool:
    """Check that ``value`` is strictly a boolean."""
    return isinstance(value, bool)


def is_valid_provider(value: object) -> bool:
    """Check that ``value`` names a supported provider."""
    return isinstance(value, str) and value in {provider.value for provider in Provider}


def is_valid_media_ref(ref: object) -> bool:
    """Check every field of a media reference, including optional ones when present."""
    if not isinstance(ref, MediaRef):
        return False
    if not is_valid_string(ref.id, 1, MEDIA_ID_MAX_LENGTH):
        return False
    if not is_valid_string(ref.title, 1, TITLE_MAX_LENGTH):
        return False
    if not is_valid_provider(ref.provider):
        return False
    if ref.thumbnail is not None and not is_valid_string(ref.thumbnail, 0, THUMBNAIL_MAX_LENGTH):
        return False
    return ref.artist is None or is_valid_string(ref.artist, 0, ARTIST_MAX_LENGTH)


def is_valid_session_id(value: object) -> bool:
    """Check that ``value`` looks like a session identifier."""
    return isinstance(value, str) and SESSION_ID_PATTERN.fullmatch(value) is not None


def escape_html(text: str) -> str:
    """Escape the characters that could open markup when rendered as HTML."""
    return _HTML_ESCAPE_RE.sub(lambda match: _HTML_ESCAPES[match.group()], text)


def sanitize_text(text: str) -> str:
    """Trim and escape a free-text field."""
    return escape_html(text.strip())
