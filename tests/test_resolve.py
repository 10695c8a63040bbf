from __future__ import annotations

import pytest

from viralclip.errors import InvalidIdentifier
from viralclip.steps.resolve import require_video_key, resolve_video_key, watch_url

KEY = "dQw4w9WgXcQ"

URL_SHAPES = [
    f"https://www.youtube.com/watch?v={KEY}",
    f"https://youtube.com/watch?v={KEY}&t=42s",
    f"https://m.youtube.com/watch?feature=share&v={KEY}",
    f"http://music.youtube.com/watch?v={KEY}&list=RDAMVM",
    f"https://youtu.be/{KEY}?si=abcdef",
    f"youtu.be/{KEY}",
    f"www.youtube.com/watch?v={KEY}",
    f"https://www.youtube.com/embed/{KEY}?autoplay=1",
    f"https://www.youtube-nocookie.com/embed/{KEY}",
    f"https://www.youtube.com/v/{KEY}",
    f"https://www.youtube.com/shorts/{KEY}",
    f"https://www.youtube.com/live/{KEY}?feature=share",
    f"  {KEY}  ",
]


@pytest.mark.parametrize("value", URL_SHAPES)
def test_recognised_shapes_resolve_to_same_key(value: str) -> None:
    assert resolve_video_key(value) == KEY


def test_canonical_key_is_returned_unchanged() -> None:
    assert resolve_video_key(KEY) == KEY
    assert resolve_video_key("abc12345678") == "abc12345678"
    assert resolve_video_key("a-b_c-d_e-f") == "a-b_c-d_e-f"


@pytest.mark.parametrize("value", URL_SHAPES)
def test_resolution_is_idempotent(value: str) -> None:
    once = resolve_video_key(value)
    assert resolve_video_key(once) == once


@pytest.mark.parametrize(
    "value",
    [
        None,
        "",
        "   ",
        "abc",
        f"{KEY}x",
        "dQw4w9WgXc!",
        f"https://vimeo.com/watch?v={KEY}",
        f"https://youtube.com.evil.example/watch?v={KEY}",
        f"https://evil.example/youtu.be/{KEY}",
        f"ftp://www.youtube.com/watch?v={KEY}",
        "https://www.youtube.com/watch?v=short",
        f"https://www.youtube.com/watch?v={KEY}extra",
        f"https://www.youtube.com/playlist?list={KEY}",
        f"https://www.youtube.com/channel/{KEY}",
        "https://youtu.be/",
    ],
)
def test_invalid_values_are_rejected(value) -> None:
    assert resolve_video_key(value) is None


def test_require_video_key_raises_for_invalid_input() -> None:
    with pytest.raises(InvalidIdentifier) as excinfo:
        require_video_key("https://example.com/video")
    assert excinfo.value.status_code == 400


def test_watch_url_round_trips() -> None:
    assert resolve_video_key(watch_url(KEY)) == KEY
