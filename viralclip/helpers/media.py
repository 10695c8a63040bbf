"""Media helper utilities for probing downloaded files."""

from __future__ import annotations

import logging
import math
import subprocess
from pathlib import Path
from typing import Optional

from .. import config

logger = logging.getLogger(__name__)


def probe_media_duration(path: str | Path, *, timeout: float = 30.0) -> Optional[float]:
    """Return the container duration of ``path`` in seconds using ``ffprobe``.

    Returns ``None`` when ffprobe is missing, fails, times out or reports
    something that is not a positive number.
    """

    try:
        result = subprocess.run(
            [
                config.FFPROBE_BIN,
                "-v",
                "error",
                "-show_entries",
                "format=duration",
                "-of",
                "default=noprint_wrappers=1:nokey=1",
                str(path),
            ],
            check=True,
            text=True,
            capture_output=True,
            timeout=timeout,
        )
    except (FileNotFoundError, subprocess.CalledProcessError, subprocess.TimeoutExpired) as exc:
        logger.debug("ffprobe could not read %s: %s", path, exc)
        return None

    output = (result.stdout or "").strip()
    try:
        value = float(output)
    except ValueError:
        return None
    if not math.isfinite(value) or value <= 0:
        return None
    return value


__all__ = ["probe_media_duration"]
