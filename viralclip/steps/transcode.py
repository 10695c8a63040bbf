"""Render vertical clips with ffmpeg and verify what comes out."""

from __future__ import annotations

import logging
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Sequence

from .. import config
from ..errors import TranscodeFailed, TranscodeProducedInvalidOutput, TranscodeTimeout
from .window import ClipWindow

logger = logging.getLogger(__name__)

Runner = Callable[[Sequence[str], Optional[float]], None]

_INVALID_INPUT_MARKERS = (
    "invalid data found when processing input",
    "moov atom not found",
    "could not find codec parameters",
    "end of file",
)
_MISSING_INPUT_MARKERS = ("no such file or directory",)


@dataclass(frozen=True)
class TranscodeProfile:
    """Fixed encoding target for every clip."""

    video_codec: str = "libx264"
    audio_codec: str = "aac"
    width: int = 1080
    height: int = 1920
    aspect: str = "9:16"
    fps: float = config.OUTPUT_FPS
    preset: str = "fast"
    crf: int = 23
    max_bitrate: str = "4M"
    buffer_size: str = "8M"
    audio_bitrate: str = "128k"
    audio_sample_rate: int = 44100
    audio_channels: int = 2
    pixel_format: str = "yuv420p"

    def video_filter(self) -> str:
        # Fill the vertical frame, then crop the overflow from the centre
        return (
            f"scale={self.width}:{self.height}:force_original_aspect_ratio=increase,"
            f"crop={self.width}:{self.height},setsar=1"
        )

    def encoder_args(self) -> list[str]:
        return [
            "-r", f"{self.fps:g}",
            "-c:v", self.video_codec,
            "-preset", self.preset,
            "-crf", str(self.crf),
            "-maxrate", self.max_bitrate,
            "-bufsize", self.buffer_size,
            "-pix_fmt", self.pixel_format,
            "-aspect", self.aspect,
            "-c:a", self.audio_codec,
            "-b:a", self.audio_bitrate,
            "-ar", str(self.audio_sample_rate),
            "-ac", str(self.audio_channels),
            "-movflags", "+faststart",
        ]


DEFAULT_PROFILE = TranscodeProfile()


def run_ffmpeg(command: Sequence[str], timeout: Optional[float]) -> None:
    """Run ``command`` to completion, killing it if ``timeout`` expires."""

    subprocess.run(
        list(command),
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        check=True,
        timeout=timeout,
    )


def build_clip_command(
    source: str | Path,
    output: str | Path,
    window: ClipWindow,
    profile: TranscodeProfile = DEFAULT_PROFILE,
) -> list[str]:
    """Return the ffmpeg argument list that trims, reframes and encodes a clip."""

    return [
        config.FFMPEG_BIN,
        "-y",
        "-hide_banner",
        "-ss", f"{window.start_seconds:.3f}",
        "-i", str(source),
        "-t", f"{window.duration_seconds:.3f}",
        "-vf", profile.video_filter(),
        *profile.encoder_args(),
        str(output),
    ]


def build_sample_command(
    output: str | Path,
    *,
    seconds: float,
    profile: TranscodeProfile = DEFAULT_PROFILE,
) -> list[str]:
    """Return the ffmpeg argument list for the solid-colour placeholder clip."""

    return [
        config.FFMPEG_BIN,
        "-y",
        "-hide_banner",
        "-f", "lavfi",
        "-i", f"color=c=blue:size={profile.width}x{profile.height}:duration={seconds:g}",
        "-f", "lavfi",
        "-i", f"anullsrc=r={profile.audio_sample_rate}:cl=stereo",
        "-shortest",
        *profile.encoder_args(),
        str(output),
    ]


def _stderr_text(exc: subprocess.CalledProcessError) -> str:
    stderr = exc.stderr
    if isinstance(stderr, bytes):
        return stderr.decode(errors="ignore")
    return stderr or ""


def classify_engine_failure(stderr: str) -> str:
    lowered = stderr.lower()
    if any(marker in lowered for marker in _INVALID_INPUT_MARKERS):
        return "invalid_input"
    if any(marker in lowered for marker in _MISSING_INPUT_MARKERS):
        return "missing_input"
    return "generic"


def _remove_output(output: Path) -> None:
    try:
        output.unlink()
    except FileNotFoundError:
        pass


def verify_output(output: Path, min_bytes: int) -> int:
    """Return the size of ``output`` or raise if it is missing or undersized."""

    try:
        size = output.stat().st_size
    except FileNotFoundError:
        raise TranscodeProducedInvalidOutput(f"{output.name} was not created")
    if size <= min_bytes:
        _remove_output(output)
        raise TranscodeProducedInvalidOutput(f"{output.name} is {size} bytes")
    return size


def _run_engine(
    command: Sequence[str],
    output: Path,
    *,
    runner: Runner,
    timeout: float,
    min_bytes: int,
) -> int:
    output.parent.mkdir(parents=True, exist_ok=True)
    logger.debug("FFMPEG: %s", " ".join(command))
    t0 = time.perf_counter()
    try:
        runner(command, timeout)
    except subprocess.TimeoutExpired as exc:
        _remove_output(output)
        raise TranscodeTimeout(f"ffmpeg exceeded {timeout:.0f}s for {output.name}") from exc
    except subprocess.CalledProcessError as exc:
        _remove_output(output)
        stderr = _stderr_text(exc)
        kind = classify_engine_failure(stderr)
        logger.error("FFMPEG failed (%s) for %s:\n%s", kind, output.name, stderr[-500:])
        raise TranscodeFailed(f"ffmpeg exited with {exc.returncode}", kind=kind) from exc
    except FileNotFoundError as exc:
        _remove_output(output)
        raise TranscodeFailed(f"ffmpeg not available: {exc}", kind="generic") from exc
    except BaseException:
        _remove_output(output)
        raise

    size = verify_output(output, min_bytes)
    logger.info("FFMPEG: wrote %s (%d bytes) in %.2fs", output.name, size, time.perf_counter() - t0)
    return size


def transcode_clip(
    source: str | Path,
    output: str | Path,
    window: ClipWindow,
    *,
    profile: TranscodeProfile = DEFAULT_PROFILE,
    runner: Runner | None = None,
    timeout: float | None = None,
    min_bytes: int | None = None,
) -> int:
    """Render ``window`` of ``source`` into ``output`` as a vertical clip.

    Makes a single attempt. Returns the size of the verified output in bytes;
    on any failure the output file is removed before the error propagates.
    """

    source_path = Path(source)
    output_path = Path(output)
    if not source_path.is_file():
        raise TranscodeFailed(f"source not found: {source_path.name}", kind="missing_input")

    command = build_clip_command(source_path, output_path, window, profile)
    return _run_engine(
        command,
        output_path,
        runner=runner or run_ffmpeg,
        timeout=config.TRANSCODE_TIMEOUT_SECONDS if timeout is None else timeout,
        min_bytes=config.MIN_OUTPUT_BYTES if min_bytes is None else min_bytes,
    )


def render_sample_clip(
    output: str | Path,
    *,
    profile: TranscodeProfile = DEFAULT_PROFILE,
    seconds: float | None = None,
    runner: Runner | None = None,
    timeout: float | None = None,
    min_bytes: int | None = None,
) -> int:
    output_path = Path(output)
    command = build_sample_command(
        output_path,
        seconds=config.SAMPLE_CLIP_SECONDS if seconds is None else seconds,
        profile=profile,
    )
    return _run_engine(
        command,
        output_path,
        runner=runner or run_ffmpeg,
        timeout=config.TRANSCODE_TIMEOUT_SECONDS if timeout is None else timeout,
        min_bytes=config.MIN_OUTPUT_BYTES if min_bytes is None else min_bytes,
    )


__all__ = [
    "DEFAULT_PROFILE",
    "Runner",
    "TranscodeProfile",
    "build_clip_command",
    "build_sample_command",
    "classify_engine_failure",
    "render_sample_clip",
    "run_ffmpeg",
    "transcode_clip",
    "verify_output",
]
