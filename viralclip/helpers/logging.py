"""Logging setup and timed step helpers for the clip pipeline."""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Generator

import colorama
from colorama import Fore, Style

colorama.init(autoreset=True)

_LEVEL_COLORS = {
    logging.DEBUG: Fore.BLUE,
    logging.INFO: Fore.GREEN,
    logging.WARNING: Fore.YELLOW,
    logging.ERROR: Fore.RED,
    logging.CRITICAL: Fore.MAGENTA,
}

_STEP_COLORS = {
    "start": Fore.CYAN,
    "done": Fore.GREEN,
    "failed": Fore.RED,
}


class ColorFormatter(logging.Formatter):
    """Formatter that colours the level name of each record.

    Records emitted by :func:`log_step` carry a ``step`` attribute and have
    their message coloured by outcome as well.
    """

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        step_color = _STEP_COLORS.get(getattr(record, "step", None))
        if step_color:
            message = message.replace(
                record.message, f"{step_color}{record.message}{Style.RESET_ALL}", 1
            )
        color = _LEVEL_COLORS.get(record.levelno)
        if not color:
            return message
        return message.replace(
            record.levelname, f"{color}{record.levelname}{Style.RESET_ALL}", 1
        )


def configure_logging(level: int | str = logging.INFO) -> None:
    """Attach a single coloured stream handler to the root logger."""

    root = logging.getLogger()
    root.setLevel(level)
    for handler in root.handlers:
        if isinstance(handler.formatter, ColorFormatter):
            return
    handler = logging.StreamHandler()
    handler.setFormatter(ColorFormatter("[%(asctime)s] %(levelname)s %(name)s: %(message)s"))
    root.addHandler(handler)


@contextmanager
def log_step(name: str, logger: logging.Logger | None = None) -> Generator[None, None, None]:
    """Log the start, outcome and elapsed time of a pipeline step."""

    log = logger or logging.getLogger("viralclip.pipeline")
    log.info("%s", name, extra={"step": "start"})
    start = time.perf_counter()
    try:
        yield
    except Exception as exc:
        elapsed = time.perf_counter() - start
        log.warning("  ↳ %s failed after %.2fs: %s", name, elapsed, exc, extra={"step": "failed"})
        raise
    else:
        elapsed = time.perf_counter() - start
        log.info("  ↳ %s completed in %.2fs", name, elapsed, extra={"step": "done"})


__all__ = ["ColorFormatter", "configure_logging", "log_step"]
