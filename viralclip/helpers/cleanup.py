"""Retention sweep for downloaded sources and rendered clips."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Iterable

from .. import config
from ..store import AssetStore

logger = logging.getLogger(__name__)


def sweep_expired(
    stores: Iterable[AssetStore],
    *,
    retention_seconds: float | None = None,
    now: float | None = None,
) -> list[str]:
    """Delete entries older than ``retention_seconds`` from every store.

    A failure to delete one entry is logged and the sweep moves on to the
    next. Returns the keys that were removed.
    """

    window = config.RETENTION_SECONDS if retention_seconds is None else retention_seconds
    current = time.time() if now is None else now
    removed: list[str] = []
    for store in stores:
        for key in store.keys():
            stat = store.stat(key)
            if stat is None or current - stat.modified_at <= window:
                continue
            try:
                deleted = store.delete(key)
            except OSError as exc:
                logger.warning("Could not remove expired file %s: %s", key, exc)
                continue
            if deleted:
                removed.append(key)
                logger.info("Cleaned up old file: %s", key)
    return removed


class RetentionSweeper:
    """Run :func:`sweep_expired` on a background thread.

    The first sweep happens as soon as the thread starts, then once every
    ``interval`` seconds until :meth:`stop` is called.
    """

    def __init__(
        self,
        stores: Iterable[AssetStore],
        *,
        interval: float | None = None,
        retention_seconds: float | None = None,
        sweep: Callable[..., list[str]] = sweep_expired,
    ):
        self.stores = list(stores)
        self.interval = config.SWEEP_INTERVAL_SECONDS if interval is None else interval
        self.retention_seconds = retention_seconds
        self._sweep = sweep
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def run_once(self) -> list[str]:
        return self._sweep(self.stores, retention_seconds=self.retention_seconds)

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.run_once()
            except Exception:
                logger.exception("Retention sweep failed")
            self._stop.wait(self.interval)

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="retention-sweep", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None


__all__ = ["RetentionSweeper", "sweep_expired"]
