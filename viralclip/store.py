"""Asset stores backing the temporary and processed video directories.

There is no index file: the directory listing plus a per-file ``stat`` is the
only metadata. :class:`MemoryStore` implements the same interface for tests.
"""

from __future__ import annotations

import re
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, Protocol

ASSET_KEY_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


def is_valid_asset_key(key: str) -> bool:
    return bool(ASSET_KEY_RE.match(key)) and key not in (".", "..")


@dataclass(frozen=True)
class AssetStat:
    size_bytes: int
    modified_at: float


@dataclass(frozen=True)
class ProcessedClip:
    clip_id: str
    path: Path
    size_bytes: int
    created_at: float


class AssetStore(Protocol):
    def exists(self, key: str) -> bool: ...

    def stat(self, key: str) -> AssetStat | None: ...

    def write(self, key: str, data: bytes) -> None: ...

    def delete(self, key: str) -> bool: ...

    def keys(self) -> list[str]: ...

    def iter_range(self, key: str, start: int, end: int, chunk_size: int) -> Iterator[bytes]: ...


class FileSystemStore:
    """Store whose entries are the files ``<directory>/<key><suffix>``."""

    def __init__(self, directory: Path, suffix: str = ""):
        self.directory = Path(directory)
        self.suffix = suffix

    def __repr__(self) -> str:
        return f"FileSystemStore({str(self.directory)!r}, suffix={self.suffix!r})"

    def path_for(self, key: str) -> Path:
        if not is_valid_asset_key(key):
            raise ValueError(f"invalid asset key {key!r}")
        return self.directory / f"{key}{self.suffix}"

    def _existing_path(self, key: str) -> Path | None:
        if not is_valid_asset_key(key):
            return None
        path = self.directory / f"{key}{self.suffix}"
        return path if path.is_file() else None

    def exists(self, key: str) -> bool:
        return self._existing_path(key) is not None

    def stat(self, key: str) -> AssetStat | None:
        path = self._existing_path(key)
        if path is None:
            return None
        try:
            st = path.stat()
        except FileNotFoundError:
            return None
        return AssetStat(size_bytes=st.st_size, modified_at=st.st_mtime)

    def write(self, key: str, data: bytes) -> None:
        path = self.path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    def delete(self, key: str) -> bool:
        path = self._existing_path(key)
        if path is None:
            return False
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True

    def keys(self) -> list[str]:
        if not self.directory.is_dir():
            return []
        found: list[str] = []
        for child in sorted(self.directory.iterdir()):
            if not child.is_file() or not child.name.endswith(self.suffix):
                continue
            key = child.name[: len(child.name) - len(self.suffix)] if self.suffix else child.name
            if is_valid_asset_key(key):
                found.append(key)
        return found

    def iter_range(self, key: str, start: int, end: int, chunk_size: int) -> Iterator[bytes]:
        """Yield bytes ``start..end`` (inclusive) of ``key`` in chunks."""

        path = self._existing_path(key)
        if path is None:
            return
        remaining = end - start + 1
        with path.open("rb") as handle:
            handle.seek(start)
            while remaining > 0:
                chunk = handle.read(min(chunk_size, remaining))
                if not chunk:
                    break
                remaining -= len(chunk)
                yield chunk


class MemoryStore:
    """In-memory :class:`AssetStore` used by tests."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._items: dict[str, tuple[bytes, float]] = {}
        self._lock = threading.Lock()

    def exists(self, key: str) -> bool:
        with self._lock:
            return key in self._items

    def stat(self, key: str) -> AssetStat | None:
        with self._lock:
            item = self._items.get(key)
        if item is None:
            return None
        data, modified_at = item
        return AssetStat(size_bytes=len(data), modified_at=modified_at)

    def write(self, key: str, data: bytes, *, modified_at: float | None = None) -> None:
        with self._lock:
            self._items[key] = (bytes(data), self._clock() if modified_at is None else modified_at)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._items.pop(key, None) is not None

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._items)

    def iter_range(self, key: str, start: int, end: int, chunk_size: int) -> Iterator[bytes]:
        with self._lock:
            item = self._items.get(key)
        if item is None:
            return
        data = item[0][start : end + 1]
        for offset in range(0, len(data), chunk_size):
            yield data[offset : offset + chunk_size]


class ClipIdGenerator:
    """Issue ``viral_<key>_<micros>`` identifiers that never repeat."""

    def __init__(self, clock: Callable[[], int] = time.time_ns, prefix: str = "viral"):
        self._clock = clock
        self._prefix = prefix
        self._lock = threading.Lock()
        self._last = 0

    def next_id(self, video_key: str) -> str:
        with self._lock:
            stamp = max(self._clock() // 1000, self._last + 1)
            self._last = stamp
        return f"{self._prefix}_{video_key}_{stamp}"


__all__ = [
    "ASSET_KEY_RE",
    "AssetStat",
    "AssetStore",
    "ClipIdGenerator",
    "FileSystemStore",
    "MemoryStore",
    "ProcessedClip",
    "is_valid_asset_key",
]
