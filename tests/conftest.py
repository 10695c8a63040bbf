"""Shared stubs and fixtures for the clip pipeline tests."""

from __future__ import annotations

import sys
import threading
from pathlib import Path
from typing import Any, Callable, Sequence

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from viralclip import config
from viralclip.pipeline import ClipPipeline
from viralclip.steps.download import DownloadCache
from viralclip.store import FileSystemStore

SOURCE_BYTES = b"\x00\x01" * (config.MIN_SOURCE_BYTES // 2 + 512)
CLIP_BYTES = b"clip" * 1024
VIDEO_KEY = "abc12345678"


class StubFetcher:
    """Download collaborator that writes ``payload`` and counts calls."""

    def __init__(self, payload: bytes = SOURCE_BYTES):
        self.payload = payload
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def __call__(self, url: str, output_path: Path, cancel_event: threading.Event) -> None:
        with self._lock:
            self.calls.append(url)
        output_path.write_bytes(self.payload)


class StubRunner:
    """Transcoder collaborator that writes ``payload`` to the output argument."""

    def __init__(self, payload: bytes = CLIP_BYTES):
        self.payload = payload
        self.commands: list[list[str]] = []

    def __call__(self, command: Sequence[str], timeout: float | None) -> None:
        self.commands.append(list(command))
        Path(command[-1]).write_bytes(self.payload)


def make_info(duration: float = 40.0, **overrides: Any) -> dict[str, Any]:
    info: dict[str, Any] = {
        "id": VIDEO_KEY,
        "title": "A Very Good Video",
        "duration": duration,
        "uploader": "Example Channel",
        "thumbnails": [
            {"url": "https://i.ytimg.com/vi/abc12345678/default.jpg"},
            {"url": "https://i.ytimg.com/vi/abc12345678/hqdefault.jpg"},
        ],
        "description": "Some description text.",
    }
    info.update(overrides)
    return info


class StubExtractor:
    def __init__(self, info: dict[str, Any] | None = None, error: Exception | None = None):
        self.info = info if info is not None else make_info()
        self.error = error
        self.calls: list[str] = []

    def __call__(self, url: str) -> dict[str, Any]:
        self.calls.append(url)
        if self.error is not None:
            raise self.error
        return self.info


TEST_SETTINGS = config.ServiceSettings(
    host="127.0.0.1",
    port=5000,
    environment="test",
    cors_allow_origins=["*"],
    rate_window_seconds=60,
    rate_max_requests=100,
)


@pytest.fixture
def make_pipeline(tmp_path: Path) -> Callable[..., ClipPipeline]:
    def _make(
        *,
        extractor: StubExtractor | None = None,
        fetcher: Callable[..., None] | None = None,
        runner: Callable[..., None] | None = None,
        download_timeout: float = 5.0,
    ) -> ClipPipeline:
        cache = DownloadCache(
            tmp_path / "temp",
            fetcher=fetcher or StubFetcher(),
            timeout=download_timeout,
            grace=1.0,
        )
        return ClipPipeline(
            download_cache=cache,
            processed_store=FileSystemStore(tmp_path / "processed", suffix=".mp4"),
            extractor=extractor or StubExtractor(),
            runner=runner or StubRunner(),
            probe=lambda path: None,
        )

    return _make
