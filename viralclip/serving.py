"""Byte-range aware streaming of stored clips."""

from __future__ import annotations

import re
from dataclasses import dataclass

from fastapi import status
from fastapi.responses import StreamingResponse

from . import config
from .errors import AssetNotFound, RangeNotSatisfiable
from .store import AssetStore

_RANGE_RE = re.compile(r"^bytes=(\d*)-(\d*)$")

VIDEO_MEDIA_TYPE = "video/mp4"


@dataclass(frozen=True)
class ByteRange:
    start: int
    end: int  # inclusive

    @property
    def length(self) -> int:
        return self.end - self.start + 1


def parse_range(header: str | None, size: int) -> ByteRange | None:
    """Parse a single ``Range`` header against a resource of ``size`` bytes.

    Returns ``None`` when the header is absent, malformed or asks for more
    than one range, in which case the whole resource is served. An end past
    the last byte is clamped. Raises :class:`RangeNotSatisfiable` when the
    range starts at or beyond ``size`` or is inverted.
    """

    if not header:
        return None
    match = _RANGE_RE.match(header.strip().replace(" ", ""))
    if not match:
        return None
    raw_start, raw_end = match.groups()
    if not raw_start and not raw_end:
        return None

    if not raw_start:
        # Suffix range: the final N bytes
        suffix = int(raw_end)
        if suffix == 0 or size == 0:
            raise RangeNotSatisfiable(size, header)
        return ByteRange(start=max(0, size - suffix), end=size - 1)

    start = int(raw_start)
    end = int(raw_end) if raw_end else size - 1
    if start >= size or start > end:
        raise RangeNotSatisfiable(size, header)
    return ByteRange(start=start, end=min(end, size - 1))


def build_asset_response(
    store: AssetStore,
    key: str,
    range_header: str | None,
    *,
    chunk_size: int | None = None,
) -> StreamingResponse:
    """Return a 200 or 206 streaming response for ``key`` in ``store``."""

    stat = store.stat(key)
    if stat is None:
        raise AssetNotFound(f"no stored asset {key!r}")

    size = stat.size_bytes
    requested = parse_range(range_header, size)
    chunk = chunk_size or config.STREAM_CHUNK_BYTES
    headers = {"Accept-Ranges": "bytes"}

    if requested is None:
        headers["Content-Length"] = str(size)
        body = store.iter_range(key, 0, size - 1, chunk) if size else iter(())
        return StreamingResponse(
            body, status_code=status.HTTP_200_OK, media_type=VIDEO_MEDIA_TYPE, headers=headers
        )

    headers["Content-Length"] = str(requested.length)
    headers["Content-Range"] = f"bytes {requested.start}-{requested.end}/{size}"
    return StreamingResponse(
        store.iter_range(key, requested.start, requested.end, chunk),
        status_code=status.HTTP_206_PARTIAL_CONTENT,
        media_type=VIDEO_MEDIA_TYPE,
        headers=headers,
    )


__all__ = ["ByteRange", "VIDEO_MEDIA_TYPE", "build_asset_response", "parse_range"]
