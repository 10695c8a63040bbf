"""Fetch video metadata through yt-dlp and gate it on duration."""

from __future__ import annotations

import logging
import math
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

import yt_dlp
from yt_dlp.utils import DownloadError

from .. import config
from ..errors import MetadataTimeout, MetadataUnavailable, SourceUnavailable, TooLong, TooShort
from .resolve import watch_url

logger = logging.getLogger(__name__)

Extractor = Callable[[str], Mapping[str, Any] | None]

_UNAVAILABLE_MARKERS = (
    "private video",
    "video unavailable",
    "this video is unavailable",
    "has been removed",
    "been terminated",
    "no longer available",
    "members-only",
    "join this channel",
    "sign in to confirm your age",
    "age-restricted",
    "not available in your country",
    "copyright",
)
NETWORK_ERROR_MARKERS = (
    "unable to download webpage",
    "urlopen error",
    "connection reset",
    "connection refused",
    "timed out",
    "temporary failure in name resolution",
    "name or service not known",
    "network is unreachable",
    "getaddrinfo failed",
)

# Shared across requests so a slow provider never blocks unrelated jobs
_executor = ThreadPoolExecutor(max_workers=8, thread_name_prefix="metadata")


@dataclass(frozen=True)
class VideoMetadata:
    key: str
    title: str
    duration_seconds: float
    author: str
    thumbnails: list[str] = field(default_factory=list)
    description: str = ""

    def to_payload(self) -> dict[str, Any]:
        return {
            "videoId": self.key,
            "title": self.title,
            "duration": self.duration_seconds,
            "author": self.author,
            "thumbnails": list(self.thumbnails),
            "description": self.description,
        }


def _ytdlp_extract(url: str) -> Mapping[str, Any] | None:
    ydl_opts = {
        "quiet": True,
        "no_warnings": True,
        "skip_download": True,
        "noplaylist": True,
        "socket_timeout": config.SOCKET_TIMEOUT_SECONDS,
    }
    with yt_dlp.YoutubeDL(ydl_opts) as ydl:
        return ydl.extract_info(url, download=False)


def _classify_download_error(key: str, exc: DownloadError) -> Exception:
    message = str(exc).lower()
    if any(marker in message for marker in _UNAVAILABLE_MARKERS):
        return MetadataUnavailable(f"{key}: {exc}")
    if any(marker in message for marker in NETWORK_ERROR_MARKERS):
        return SourceUnavailable(f"{key}: {exc}", reason="network")
    return MetadataUnavailable(f"{key}: {exc}")


def _thumbnail_urls(info: Mapping[str, Any]) -> list[str]:
    urls: list[str] = []
    thumbnails = info.get("thumbnails")
    if isinstance(thumbnails, list):
        for thumb in thumbnails:
            if isinstance(thumb, Mapping) and isinstance(thumb.get("url"), str):
                urls.append(thumb["url"])
    single = info.get("thumbnail")
    if not urls and isinstance(single, str):
        urls.append(single)
    return urls


def parse_metadata(key: str, info: Mapping[str, Any] | None) -> VideoMetadata:
    """Validate a yt-dlp info dict and convert it into :class:`VideoMetadata`."""

    if not isinstance(info, Mapping):
        raise MetadataUnavailable(f"{key}: provider returned no information")
    if info.get("is_live") or info.get("live_status") in ("is_live", "is_upcoming"):
        raise MetadataUnavailable(
            f"{key}: live or upcoming stream",
            public_message="Live streams and premieres cannot be clipped",
        )
    availability = info.get("availability")
    if availability in ("private", "needs_auth", "premium_only", "subscriber_only"):
        raise MetadataUnavailable(f"{key}: availability={availability}")

    raw_duration = info.get("duration")
    if isinstance(raw_duration, bool) or not isinstance(raw_duration, (int, float)):
        raise MetadataUnavailable(f"{key}: missing duration")
    duration = float(raw_duration)
    if not math.isfinite(duration) or duration <= 0:
        raise MetadataUnavailable(f"{key}: invalid duration {raw_duration!r}")

    return VideoMetadata(
        key=key,
        title=str(info.get("title") or "Unknown Title"),
        duration_seconds=duration,
        author=str(info.get("uploader") or info.get("channel") or "Unknown Channel"),
        thumbnails=_thumbnail_urls(info),
        description=str(info.get("description") or ""),
    )


def fetch_metadata(
    key: str,
    *,
    extractor: Extractor | None = None,
    timeout: float | None = None,
) -> VideoMetadata:
    """Return metadata for ``key`` from the media-info provider.

    The provider is called exactly once. The wait is bounded by ``timeout``
    seconds regardless of the provider's own socket timeout.
    """

    extract = extractor or _ytdlp_extract
    wait = config.METADATA_TIMEOUT_SECONDS if timeout is None else timeout
    future = _executor.submit(extract, watch_url(key))
    try:
        info = future.result(timeout=wait)
    except FuturesTimeout:
        future.cancel()
        raise MetadataTimeout(f"{key}: no metadata after {wait:.0f}s")
    except DownloadError as exc:
        raise _classify_download_error(key, exc) from exc
    return parse_metadata(key, info)


def check_duration(
    metadata: VideoMetadata,
    *,
    min_seconds: float | None = None,
    max_seconds: float | None = None,
) -> VideoMetadata:
    """Raise :class:`TooShort` / :class:`TooLong` outside the allowed bounds."""

    lower = config.MIN_VIDEO_SECONDS if min_seconds is None else min_seconds
    upper = config.MAX_VIDEO_SECONDS if max_seconds is None else max_seconds
    if metadata.duration_seconds < lower:
        raise TooShort(metadata.duration_seconds, lower)
    if metadata.duration_seconds > upper:
        raise TooLong(metadata.duration_seconds, upper)
    return metadata


def fetch_gated_metadata(
    key: str,
    *,
    extractor: Extractor | None = None,
    timeout: float | None = None,
    min_seconds: float | None = None,
    max_seconds: float | None = None,
) -> VideoMetadata:
    metadata = fetch_metadata(key, extractor=extractor, timeout=timeout)
    logger.info(
        "Metadata for %s: %r by %s (%.0fs)",
        key,
        metadata.title,
        metadata.author,
        metadata.duration_seconds,
    )
    return check_duration(metadata, min_seconds=min_seconds, max_seconds=max_seconds)


__all__ = [
    "VideoMetadata",
    "parse_metadata",
    "fetch_metadata",
    "check_duration",
    "fetch_gated_metadata",
    "NETWORK_ERROR_MARKERS",
]
