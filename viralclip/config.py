"""Central configuration for the clip pipeline and HTTP service.

Sections are grouped by pipeline stage. Every value can be overridden through
an environment variable (or a ``.env`` file in the working directory).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from .common.env import load_env

load_env()


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


def _env_csv(name: str, default: list[str]) -> list[str]:
    raw = os.environ.get(name)
    if raw is None:
        return list(default)
    values = [item.strip() for item in raw.split(",") if item.strip()]
    return values or list(default)


# ---------------------------------------
# Storage layout
# ---------------------------------------
_data_dir_override = os.environ.get("VIRALCLIP_DATA_DIR")
if _data_dir_override:
    VIDEOS_DIR = Path(_data_dir_override).expanduser().resolve()
else:
    VIDEOS_DIR = Path.cwd() / "videos"
# Downloaded source media, keyed by video key
TEMP_DIR = VIDEOS_DIR / "temp"
# Finished vertical clips, keyed by clip id
PROCESSED_DIR = VIDEOS_DIR / "processed"
SAMPLE_CLIP_ID = "sample"

# ---------------------------------------
# Metadata and duration gate
# ---------------------------------------
MIN_VIDEO_SECONDS = _env_float("MIN_VIDEO_SECONDS", 10.0)
MAX_VIDEO_SECONDS = _env_float("MAX_VIDEO_SECONDS", 1800.0)  # 30 minutes
METADATA_TIMEOUT_SECONDS = _env_float("METADATA_TIMEOUT_SECONDS", 30.0)
# Socket-level timeout handed to yt-dlp for every request it makes
SOCKET_TIMEOUT_SECONDS = _env_float("SOCKET_TIMEOUT_SECONDS", 20.0)

# ---------------------------------------
# Download cache
# ---------------------------------------
# Files at or below this size are treated as truncated/placeholder downloads
MIN_SOURCE_BYTES = _env_int("MIN_SOURCE_BYTES", 10 * 1024)
DOWNLOAD_TIMEOUT_SECONDS = _env_float("DOWNLOAD_TIMEOUT_SECONDS", 300.0)
# Time the aborted transfer is given to unwind before partial files are removed
DOWNLOAD_CANCEL_GRACE_SECONDS = _env_float("DOWNLOAD_CANCEL_GRACE_SECONDS", 10.0)
DOWNLOAD_FORMAT = os.environ.get(
    "DOWNLOAD_FORMAT", "best[ext=mp4]/bestvideo[ext=mp4]+bestaudio[ext=m4a]/best"
)

# ---------------------------------------
# Clip window selection
# ---------------------------------------


@dataclass(frozen=True)
class ClipWindowConfig:
    target_seconds: float = 60.0
    max_seconds: float = 60.0  # hard cap regardless of source length
    max_fraction: float = 0.5  # never use more than this share of the source
    min_seconds: float = 5.0
    start_policy: str = "fixed"  # "fixed" or "random"
    start_fraction: float = 0.25  # position inside the slack for "fixed"


CLIP_WINDOW = ClipWindowConfig(
    target_seconds=_env_float("CLIP_TARGET_SECONDS", 60.0),
    max_seconds=_env_float("CLIP_MAX_SECONDS", 60.0),
    max_fraction=_env_float("CLIP_MAX_FRACTION", 0.5),
    min_seconds=_env_float("CLIP_MIN_SECONDS", 5.0),
    start_policy=os.environ.get("CLIP_START_POLICY", "fixed"),
    start_fraction=_env_float("CLIP_START_FRACTION", 0.25),
)

# ---------------------------------------
# Transcoding
# ---------------------------------------
FFMPEG_BIN = os.environ.get("FFMPEG_BIN", "ffmpeg")
FFPROBE_BIN = os.environ.get("FFPROBE_BIN", "ffprobe")
TRANSCODE_TIMEOUT_SECONDS = _env_float("TRANSCODE_TIMEOUT_SECONDS", 600.0)
# Rendered clips at or below this size are treated as silent engine failures
MIN_OUTPUT_BYTES = _env_int("MIN_OUTPUT_BYTES", 1024)
SAMPLE_CLIP_SECONDS = _env_float("SAMPLE_CLIP_SECONDS", 10.0)
# Constant frame-rate keeps short-form platforms happy
OUTPUT_FPS: float = 30.0

# ---------------------------------------
# Retention
# ---------------------------------------
RETENTION_SECONDS = _env_float("RETENTION_SECONDS", 60 * 60)
SWEEP_INTERVAL_SECONDS = _env_float("SWEEP_INTERVAL_SECONDS", 30 * 60)

# ---------------------------------------
# HTTP service
# ---------------------------------------


@dataclass(frozen=True)
class ServiceSettings:
    host: str
    port: int
    environment: str
    cors_allow_origins: list[str]
    rate_window_seconds: int
    rate_max_requests: int


SERVICE = ServiceSettings(
    host=os.environ.get("HOST", "0.0.0.0"),
    port=_env_int("PORT", 5000),
    environment=os.environ.get("APP_ENV", "development"),
    cors_allow_origins=_env_csv("CORS_ALLOW_ORIGINS", ["*"]),
    rate_window_seconds=_env_int("RATE_WINDOW_SECONDS", 15 * 60),
    rate_max_requests=_env_int("RATE_MAX_REQUESTS", 10),
)

STREAM_CHUNK_BYTES = 64 * 1024

__all__ = [
    "VIDEOS_DIR",
    "TEMP_DIR",
    "PROCESSED_DIR",
    "SAMPLE_CLIP_ID",
    "MIN_VIDEO_SECONDS",
    "MAX_VIDEO_SECONDS",
    "METADATA_TIMEOUT_SECONDS",
    "SOCKET_TIMEOUT_SECONDS",
    "MIN_SOURCE_BYTES",
    "DOWNLOAD_TIMEOUT_SECONDS",
    "DOWNLOAD_CANCEL_GRACE_SECONDS",
    "DOWNLOAD_FORMAT",
    "ClipWindowConfig",
    "CLIP_WINDOW",
    "FFMPEG_BIN",
    "FFPROBE_BIN",
    "TRANSCODE_TIMEOUT_SECONDS",
    "MIN_OUTPUT_BYTES",
    "SAMPLE_CLIP_SECONDS",
    "OUTPUT_FPS",
    "RETENTION_SECONDS",
    "SWEEP_INTERVAL_SECONDS",
    "ServiceSettings",
    "SERVICE",
    "STREAM_CHUNK_BYTES",
]
