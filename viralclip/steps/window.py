"""Choose the sub-interval of the source that becomes the clip."""

from __future__ import annotations

import math
import random
from dataclasses import dataclass

from .. import config
from ..config import ClipWindowConfig

START_POLICIES = ("fixed", "random")


@dataclass(frozen=True)
class ClipWindow:
    start_seconds: float
    duration_seconds: float

    @property
    def end_seconds(self) -> float:
        return self.start_seconds + self.duration_seconds


def _floor_ms(value: float) -> float:
    return math.floor(value * 1000) / 1000


def plan_clip_window(
    duration: float,
    *,
    window_config: ClipWindowConfig | None = None,
    rng: random.Random | None = None,
) -> ClipWindow:
    """Return the clip window for a source of ``duration`` seconds.

    Length is the configured target, limited to ``max_fraction`` of the
    source and to ``max_seconds``, but never shorter than ``min_seconds``
    (or the whole source when it is shorter than that). The start is
    truncated to whole milliseconds and the window always fits inside the
    source.
    """

    cfg = window_config or config.CLIP_WINDOW
    if not isinstance(duration, (int, float)) or not math.isfinite(duration) or duration <= 0:
        raise ValueError(f"duration must be a positive number, got {duration!r}")
    if cfg.start_policy not in START_POLICIES:
        raise ValueError(f"unknown start policy {cfg.start_policy!r}")

    total = float(duration)
    length = min(cfg.target_seconds, total * cfg.max_fraction, cfg.max_seconds)
    length = max(length, min(cfg.min_seconds, total))
    length = min(length, total)

    slack = max(0.0, total - length)
    if cfg.start_policy == "random":
        offset = (rng or random).uniform(0.0, slack)
    else:
        offset = slack * min(max(cfg.start_fraction, 0.0), 1.0)
    start = _floor_ms(min(offset, slack))
    # Guard against float rounding pushing the end past the source
    while start > 0 and start + length > total:
        start = max(0.0, start - 0.001)

    return ClipWindow(start_seconds=start, duration_seconds=length)


__all__ = ["ClipWindow", "START_POLICIES", "plan_clip_window"]
