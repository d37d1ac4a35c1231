import math

import pytest

from aiosyncroom.models import MediaRef
from aiosyncroom.server.validation import (
    MAX_POSITION_SECONDS,
    escape_html,
    is_valid_bool,
    is_valid_index,
    is_valid_media_ref,
    is_valid_number,
    is_valid_session_id,
    is_valid_string,
    sanitize_text,
)


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("alice", True),
        ("  bob  ", True),
        ("", False),
        ("   ", False),
        ("x" * 30, True),
        ("x" * 31, False),
        (12, False),
        (None, False),
    ],
)
def test_display_name_bounds(value: object, expected: bool) -> None:
    assert is_valid_string(value, 1, 30) is expected


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (0, True),
        (12.5, True),
        (MAX_POSITION_SECONDS, True),
        (MAX_POSITION_SECONDS + 1, False),
        (-0.1, False),
        (math.nan, False),
        (math.inf, False),
        (True, False),
        ("12", False),
    ],
)
def test_position_numbers(value: object, expected: bool) -> None:
    assert is_valid_number(value) is expected


def test_index_and_bool() -> None:
    assert is_valid_index(0)
    assert not is_valid_index(-1)
    assert not is_valid_index(1.0)
    assert not is_valid_index(False)
    assert is_valid_bool(False)
    assert not is_valid_bool(0)


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("a1b2c3d4", True),
        ("ABCD-123", True),
        ("a1b2c3d", False),
        ("a1b2c3d4e", False),
        ("a1b2c3_4", False),
        (None, False),
    ],
)
def test_session_id_shape(value: object, expected: bool) -> None:
    assert is_valid_session_id(value) is expected


def test_media_ref_fields() -> None:
    assert is_valid_media_ref(MediaRef(provider="youtube", id="abc", title="Song"))
    assert is_valid_media_ref(
        MediaRef(provider="youtube", id="abc", title="Song", thumbnail="", artist="Band")
    )
    assert not is_valid_media_ref(MediaRef(provider="vimeo", id="abc", title="Song"))
    assert not is_valid_media_ref(MediaRef(provider="youtube", id="", title="Song"))
    assert not is_valid_media_ref(MediaRef(provider="youtube", id="abc", title="t" * 201))
    assert not is_valid_media_ref(
        MediaRef(provider="youtube", id="abc", title="Song", thumbnail="u" * 501)
    )
    assert not is_valid_media_ref({"provider": "youtube", "id": "abc", "title": "Song"})


def test_escape_html() -> None:
    assert escape_html("<b>\"Tom\" & 'Jerry'</b>") == (
        "&lt;b&gt;&quot;Tom&quot; &amp; &#x27;Jerry&#x27;&lt;&#x2F;b&gt;"
    )


def test_sanitize_trims_before_escaping() -> None:
    assert sanitize_text("  hi <3  ") == "hi &lt;3"
