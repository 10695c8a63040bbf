"""Failure kinds raised by the clip pipeline.

Each kind carries the HTTP status it maps to and a message that is safe to
show to API callers. Internal detail (paths, engine stderr) belongs in the
log, not in ``public_message``.
"""

from __future__ import annotations


class ClipError(Exception):
    """Base class for every classified pipeline failure."""

    status_code = 500
    public_message = "Failed to process video"

    def __init__(self, detail: str | None = None, *, public_message: str | None = None):
        super().__init__(detail or self.public_message)
        if public_message is not None:
            self.public_message = public_message


class InvalidIdentifier(ClipError):
    status_code = 400
    public_message = "Invalid YouTube URL or video ID"


class MetadataUnavailable(ClipError):
    """The video is private, deleted or otherwise inaccessible."""

    status_code = 400
    public_message = "Video is unavailable, private or has been removed"


class MetadataTimeout(ClipError):
    status_code = 408
    public_message = "Timed out while fetching video information"


def _describe_limit(limit: float) -> str:
    if limit >= 60 and limit % 60 == 0:
        minutes = int(limit // 60)
        return f"{minutes} minute" if minutes == 1 else f"{minutes} minutes"
    return f"{limit:g} seconds"


class TooLong(ClipError):
    status_code = 400

    def __init__(self, duration: float, limit: float):
        super().__init__(
            f"duration {duration:.0f}s exceeds {limit:.0f}s",
            public_message=f"Video is too long. Please use videos shorter than {_describe_limit(limit)}.",
        )
        self.duration = duration
        self.limit = limit


class TooShort(ClipError):
    status_code = 400

    def __init__(self, duration: float, limit: float):
        super().__init__(
            f"duration {duration:.0f}s below {limit:.0f}s",
            public_message=f"Video is too short. Please use videos longer than {limit:.0f} seconds.",
        )
        self.duration = duration
        self.limit = limit


class DownloadTimeout(ClipError):
    status_code = 408
    public_message = "Timed out while downloading the video"


class CorruptDownload(ClipError):
    status_code = 500
    public_message = "Downloaded video was empty or corrupt"


class SourceUnavailable(ClipError):
    """Transport-level failure while talking to the video host."""

    _STATUS_BY_REASON = {"network": 503, "access_denied": 400, "unavailable": 400}
    _MESSAGE_BY_REASON = {
        "network": "Network error while contacting the video host",
        "access_denied": "Access to this video was denied",
        "unavailable": "Video source is unavailable",
    }

    def __init__(self, detail: str | None = None, *, reason: str = "network"):
        super().__init__(detail, public_message=self._MESSAGE_BY_REASON.get(reason))
        self.reason = reason
        self.status_code = self._STATUS_BY_REASON.get(reason, 503)


class TranscodeFailed(ClipError):
    """The transcoding engine reported an error."""

    KINDS = ("invalid_input", "missing_input", "generic")

    def __init__(self, detail: str | None = None, *, kind: str = "generic"):
        if kind not in self.KINDS:
            raise ValueError(f"unknown transcode failure kind: {kind}")
        super().__init__(detail)
        self.kind = kind


class TranscodeTimeout(ClipError):
    status_code = 408
    public_message = "Timed out while processing the video"


class TranscodeProducedInvalidOutput(ClipError):
    pass


class AssetNotFound(ClipError):
    status_code = 404
    public_message = "Video not found"


class RangeNotSatisfiable(ClipError):
    status_code = 416
    public_message = "Requested range not satisfiable"

    def __init__(self, size: int, header: str | None = None):
        super().__init__(f"range {header!r} outside 0-{max(size - 1, 0)}")
        self.size = size


__all__ = [
    "ClipError",
    "InvalidIdentifier",
    "MetadataUnavailable",
    "MetadataTimeout",
    "TooLong",
    "TooShort",
    "DownloadTimeout",
    "CorruptDownload",
    "SourceUnavailable",
    "TranscodeFailed",
    "TranscodeTimeout",
    "TranscodeProducedInvalidOutput",
    "AssetNotFound",
    "RangeNotSatisfiable",
]
