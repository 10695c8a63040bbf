"""Download cache for source videos.

Source media lives in the temporary directory under a path derived from the
video key. A file above the minimum size is a cache hit; anything smaller is
treated as a truncated download and fetched again. Fetches run on worker
threads under a hard timeout and every failure path removes partial output
before the error is raised. A worker that outlives its timeout keeps its key
blocked until it exits and its files are deleted.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FuturesTimeout, wait
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

import yt_dlp
from yt_dlp.utils import DownloadCancelled, DownloadError

from .. import config
from ..errors import CorruptDownload, DownloadTimeout, SourceUnavailable
from .metadata import NETWORK_ERROR_MARKERS
from .resolve import watch_url

logger = logging.getLogger(__name__)

Fetcher = Callable[[str, Path, threading.Event], None]

_ACCESS_DENIED_MARKERS = (
    "403",
    "forbidden",
    "sign in",
    "private video",
    "members-only",
    "confirm your age",
)
_UNAVAILABLE_MARKERS = ("unavailable", "removed", "404", "not found", "terminated")


@dataclass(frozen=True)
class CachedSource:
    key: str
    path: Path
    size_bytes: int
    mtime: float


def _build_cancel_hook(cancel_event: threading.Event) -> Callable[[dict[str, Any]], None]:
    def _hook(status: dict[str, Any]) -> None:
        if cancel_event.is_set():
            raise DownloadCancelled("download cancelled after timeout")

    return _hook


def ytdlp_fetch(url: str, output_path: Path, cancel_event: threading.Event) -> None:
    """Download ``url`` to ``output_path`` with yt-dlp.

    The transfer aborts at the next progress callback once ``cancel_event``
    is set.
    """

    ydl_opts = {
        "format": config.DOWNLOAD_FORMAT,
        "outtmpl": str(output_path),
        "merge_output_format": "mp4",
        "progress_hooks": [_build_cancel_hook(cancel_event)],
        "noplaylist": True,
        "quiet": True,
        "no_warnings": True,
        "noprogress": True,
        "overwrites": True,
        "socket_timeout": config.SOCKET_TIMEOUT_SECONDS,
    }
    with yt_dlp.YoutubeDL(ydl_opts) as ydl:
        ydl.download([url])


def classify_fetch_error(key: str, exc: BaseException) -> SourceUnavailable:
    message = str(exc).lower()
    if isinstance(exc, DownloadError):
        if any(marker in message for marker in NETWORK_ERROR_MARKERS):
            reason = "network"
        elif any(marker in message for marker in _ACCESS_DENIED_MARKERS):
            reason = "access_denied"
        elif any(marker in message for marker in _UNAVAILABLE_MARKERS):
            reason = "unavailable"
        else:
            reason = "network"
    else:
        reason = "network"
    return SourceUnavailable(f"{key}: {exc}", reason=reason)


class DownloadCache:
    """Map video keys to downloaded source files with per-key single-flight."""

    def __init__(
        self,
        directory: Path,
        *,
        fetcher: Fetcher | None = None,
        min_bytes: int | None = None,
        timeout: float | None = None,
        grace: float | None = None,
        max_workers: int = 4,
    ):
        self.directory = Path(directory)
        self.fetcher = fetcher or ytdlp_fetch
        self.min_bytes = config.MIN_SOURCE_BYTES if min_bytes is None else min_bytes
        self.timeout = config.DOWNLOAD_TIMEOUT_SECONDS if timeout is None else timeout
        self.grace = config.DOWNLOAD_CANCEL_GRACE_SECONDS if grace is None else grace
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="download")
        self._lock = threading.Lock()
        self._inflight: dict[str, Future[CachedSource]] = {}
        # Timed-out workers that have not exited yet, keyed by video key
        self._stragglers: dict[str, threading.Event] = {}

    def cache_path(self, key: str) -> Path:
        return self.directory / f"{key}_original.mp4"

    def lookup(self, key: str) -> CachedSource | None:
        """Return the cached file for ``key`` if it passes the size check."""

        path = self.cache_path(key)
        try:
            stat = path.stat()
        except FileNotFoundError:
            return None
        if stat.st_size <= self.min_bytes:
            return None
        return CachedSource(key=key, path=path, size_bytes=stat.st_size, mtime=stat.st_mtime)

    def get(self, key: str, url: str | None = None) -> CachedSource:
        """Return a valid local copy of ``key``, downloading it if needed.

        Concurrent callers asking for the same key wait on the first caller's
        download instead of starting their own.
        """

        with self._lock:
            future = self._inflight.get(key)
            owner = future is None
            if owner:
                future = Future()
                self._inflight[key] = future

        if not owner:
            logger.info("Waiting for in-flight download of %s", key)
            return future.result()

        try:
            source = self._acquire(key, url or watch_url(key))
        except BaseException as exc:
            future.set_exception(exc)
            raise
        else:
            future.set_result(source)
            return source
        finally:
            with self._lock:
                self._inflight.pop(key, None)

    def _acquire(self, key: str, url: str) -> CachedSource:
        with self._lock:
            reaped = self._stragglers.get(key)
        if reaped is not None and not reaped.wait(self.grace):
            raise DownloadTimeout(f"{key}: previous download is still unwinding")

        cached = self.lookup(key)
        if cached is not None:
            logger.info("Cache hit for %s (%d bytes)", key, cached.size_bytes)
            return cached

        path = self.cache_path(key)
        if path.exists():
            logger.warning("Discarding undersized cached file for %s", key)
        self.remove_partials(path)
        self.directory.mkdir(parents=True, exist_ok=True)
        self._fetch(key, url, path)

        cached = self.lookup(key)
        if cached is None:
            self.remove_partials(path)
            raise CorruptDownload(f"{key}: download at or below {self.min_bytes} bytes")
        logger.info("Downloaded %s (%d bytes)", key, cached.size_bytes)
        return cached

    def _fetch(self, key: str, url: str, path: Path) -> None:
        cancel_event = threading.Event()
        worker = self._executor.submit(self.fetcher, url, path, cancel_event)
        try:
            worker.result(timeout=self.timeout)
        except FuturesTimeout:
            cancel_event.set()
            worker.cancel()
            wait([worker], timeout=self.grace)
            self.remove_partials(path)
            if not worker.done():
                logger.warning("Download worker for %s ignored cancellation; cleaning up on exit", key)
                self._track_straggler(key, path, worker)
            raise DownloadTimeout(f"{key}: no complete download after {self.timeout:.0f}s")
        except (DownloadError, OSError) as exc:
            self.remove_partials(path)
            raise classify_fetch_error(key, exc) from exc
        except BaseException:
            self.remove_partials(path)
            raise

    def _track_straggler(self, key: str, path: Path, worker: Future[None]) -> None:
        """Hold ``key`` until ``worker`` exits, then delete whatever it wrote."""

        reaped = threading.Event()
        with self._lock:
            self._stragglers[key] = reaped

        def _reap(_: Future[None]) -> None:
            try:
                self.remove_partials(path)
            finally:
                with self._lock:
                    if self._stragglers.get(key) is reaped:
                        del self._stragglers[key]
                reaped.set()
                logger.info("Late download worker for %s exited; partial files removed", key)

        worker.add_done_callback(_reap)

    def remove_partials(self, path: Path) -> None:
        """Delete ``path`` and any intermediate files yt-dlp left beside it."""

        targets = [path]
        if path.parent.exists():
            targets.extend(path.parent.glob(f"{path.name}.*"))
            targets.extend(path.parent.glob(f"{path.stem}.f*"))
        for target in targets:
            try:
                target.unlink()
            except FileNotFoundError:
                continue
            logger.debug("Removed partial download %s", target.name)

    def drain(self, timeout: float | None = None) -> bool:
        """Wait for timed-out workers to exit; True once none are left."""

        with self._lock:
            pending = list(self._stragglers.values())
        return all(reaped.wait(timeout) for reaped in pending)

    def shutdown(self) -> None:
        self.drain(self.grace)
        self._executor.shutdown(wait=False, cancel_futures=True)


__all__ = ["CachedSource", "DownloadCache", "classify_fetch_error", "ytdlp_fetch"]
