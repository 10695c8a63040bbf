"""Turn free-form YouTube links or bare IDs into canonical video keys."""

from __future__ import annotations

import re
from urllib.parse import parse_qs, urlparse

from ..errors import InvalidIdentifier

VIDEO_KEY_LENGTH = 11
VIDEO_KEY_RE = re.compile(r"^[A-Za-z0-9_-]{11}$")

YOUTUBE_HOSTS = frozenset(
    {
        "youtube.com",
        "www.youtube.com",
        "m.youtube.com",
        "music.youtube.com",
        "youtube-nocookie.com",
        "www.youtube-nocookie.com",
    }
)
SHORT_LINK_HOSTS = frozenset({"youtu.be", "www.youtu.be"})

# Path shapes on the main hosts, checked in order after the ?v= query
_PATH_PREFIXES = ("/embed/", "/v/", "/shorts/", "/live/")


def is_video_key(value: str) -> bool:
    """Return True if ``value`` is already a canonical video key."""
    return bool(VIDEO_KEY_RE.match(value))


def _first_segment(path: str) -> str:
    return path.split("/", 1)[0]


def _key_or_none(token: str | None) -> str | None:
    if token and len(token) == VIDEO_KEY_LENGTH and is_video_key(token):
        return token
    return None


def resolve_video_key(value: str | None) -> str | None:
    """Return the canonical key for ``value`` or ``None`` if it is not one.

    ``value`` may be a bare key or a watch, short-link, embed, ``/v/``,
    shorts or live URL on a recognised YouTube host. Scheme-less links such
    as ``youtu.be/<key>`` are accepted too.
    """

    if not isinstance(value, str):
        return None
    candidate = value.strip()
    if not candidate:
        return None
    if is_video_key(candidate):
        return candidate

    if "://" not in candidate:
        candidate = f"https://{candidate}"
    try:
        parsed = urlparse(candidate)
    except ValueError:
        return None
    if parsed.scheme not in ("http", "https"):
        return None

    host = (parsed.hostname or "").lower()
    if host in SHORT_LINK_HOSTS:
        return _key_or_none(_first_segment(parsed.path.lstrip("/")))
    if host not in YOUTUBE_HOSTS:
        return None

    if parsed.path.rstrip("/") == "/watch":
        values = parse_qs(parsed.query).get("v")
        return _key_or_none(values[0] if values else None)
    for prefix in _PATH_PREFIXES:
        if parsed.path.startswith(prefix):
            return _key_or_none(_first_segment(parsed.path[len(prefix) :]))
    return None


def require_video_key(value: str | None) -> str:
    """Like :func:`resolve_video_key` but raise :class:`InvalidIdentifier`."""

    key = resolve_video_key(value)
    if key is None:
        raise InvalidIdentifier(f"could not resolve video key from {value!r}")
    return key


def watch_url(key: str) -> str:
    return f"https://www.youtube.com/watch?v={key}"


__all__ = [
    "VIDEO_KEY_LENGTH",
    "VIDEO_KEY_RE",
    "is_video_key",
    "resolve_video_key",
    "require_video_key",
    "watch_url",
]
