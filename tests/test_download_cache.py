from __future__ import annotations

import threading
import time
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from yt_dlp.utils import DownloadCancelled, DownloadError

from conftest import SOURCE_BYTES, VIDEO_KEY, StubFetcher
from viralclip.errors import CorruptDownload, DownloadTimeout, SourceUnavailable
from viralclip.steps import download
from viralclip.steps.download import DownloadCache, classify_fetch_error


@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    return tmp_path / "temp"


def _cache(cache_dir: Path, fetcher, **kwargs) -> DownloadCache:
    kwargs.setdefault("timeout", 5.0)
    kwargs.setdefault("grace", 1.0)
    return DownloadCache(cache_dir, fetcher=fetcher, **kwargs)


def test_second_request_is_served_from_cache(cache_dir: Path) -> None:
    fetcher = StubFetcher()
    cache = _cache(cache_dir, fetcher)

    first = cache.get(VIDEO_KEY)
    second = cache.get(VIDEO_KEY)

    assert len(fetcher.calls) == 1
    assert first.path == second.path == cache_dir / f"{VIDEO_KEY}_original.mp4"
    assert second.size_bytes == len(SOURCE_BYTES)
    cache.shutdown()


def test_undersized_cached_file_is_downloaded_again(cache_dir: Path) -> None:
    cache_dir.mkdir(parents=True)
    (cache_dir / f"{VIDEO_KEY}_original.mp4").write_bytes(b"truncated")
    fetcher = StubFetcher()
    cache = _cache(cache_dir, fetcher)

    source = cache.get(VIDEO_KEY)

    assert len(fetcher.calls) == 1
    assert source.path.read_bytes() == SOURCE_BYTES
    cache.shutdown()


def test_corrupt_download_leaves_nothing_behind(cache_dir: Path) -> None:
    cache = _cache(cache_dir, StubFetcher(payload=b"x" * 100))

    with pytest.raises(CorruptDownload):
        cache.get(VIDEO_KEY)

    assert list(cache_dir.iterdir()) == []
    cache.shutdown()


def test_stalled_download_times_out_and_is_cleaned(cache_dir: Path) -> None:
    observed = threading.Event()

    def _stalled(url: str, output_path: Path, cancel_event: threading.Event) -> None:
        output_path.with_name(output_path.name + ".part").write_bytes(b"partial")
        cancel_event.wait(5)
        if cancel_event.is_set():
            observed.set()

    cache = _cache(cache_dir, _stalled, timeout=0.1, grace=2.0)

    with pytest.raises(DownloadTimeout) as excinfo:
        cache.get(VIDEO_KEY)

    assert excinfo.value.status_code == 408
    assert observed.is_set()
    assert list(cache_dir.iterdir()) == []
    cache.shutdown()


def test_worker_that_ignores_cancel_is_cleaned_when_it_exits(cache_dir: Path) -> None:
    finished = threading.Event()
    calls: list[str] = []

    def _stubborn(url: str, output_path: Path, cancel_event: threading.Event) -> None:
        calls.append(url)
        if len(calls) > 1:
            output_path.write_bytes(SOURCE_BYTES)
            return
        # Stuck in a read: never looks at cancel_event
        time.sleep(0.5)
        output_path.with_name(output_path.name + ".part").write_bytes(b"late bytes")
        finished.set()

    cache = _cache(cache_dir, _stubborn, timeout=0.1, grace=0.1)

    with pytest.raises(DownloadTimeout):
        cache.get(VIDEO_KEY)
    # The key stays blocked while the late worker is still running
    with pytest.raises(DownloadTimeout):
        cache.get(VIDEO_KEY)
    assert len(calls) == 1

    assert finished.wait(5)
    assert cache.drain(5)
    assert list(cache_dir.iterdir()) == []

    source = cache.get(VIDEO_KEY)
    assert source.path.read_bytes() == SOURCE_BYTES
    assert len(calls) == 2
    cache.shutdown()


@pytest.mark.parametrize(
    ("message", "reason", "status"),
    [
        ("ERROR: unable to download video data: HTTP Error 403: Forbidden", "access_denied", 400),
        ("ERROR: [youtube] abc12345678: Video unavailable", "unavailable", 400),
        ("ERROR: Unable to download webpage: <urlopen error timed out>", "network", 503),
    ],
)
def test_fetch_errors_are_classified(cache_dir: Path, message: str, reason: str, status: int) -> None:
    def _failing(url: str, output_path: Path, cancel_event: threading.Event) -> None:
        output_path.write_bytes(b"half")
        raise DownloadError(message)

    cache = _cache(cache_dir, _failing)

    with pytest.raises(SourceUnavailable) as excinfo:
        cache.get(VIDEO_KEY)

    assert excinfo.value.reason == reason
    assert excinfo.value.status_code == status
    assert list(cache_dir.iterdir()) == []
    cache.shutdown()


def test_os_error_is_reported_as_network_failure() -> None:
    error = classify_fetch_error(VIDEO_KEY, ConnectionResetError("peer reset"))
    assert error.reason == "network"


def test_concurrent_requests_for_one_key_share_a_download(cache_dir: Path) -> None:
    started = threading.Event()
    release = threading.Event()
    calls: list[str] = []

    def _slow(url: str, output_path: Path, cancel_event: threading.Event) -> None:
        calls.append(url)
        started.set()
        release.wait(5)
        output_path.write_bytes(SOURCE_BYTES)

    cache = _cache(cache_dir, _slow)
    results = []

    def _request() -> None:
        results.append(cache.get(VIDEO_KEY))

    first = threading.Thread(target=_request)
    first.start()
    assert started.wait(5)
    second = threading.Thread(target=_request)
    second.start()
    release.set()
    first.join(5)
    second.join(5)

    assert len(calls) == 1
    assert len(results) == 2
    assert results[0].path == results[1].path
    cache.shutdown()


def test_different_keys_download_in_parallel(cache_dir: Path) -> None:
    barrier = threading.Barrier(2, timeout=5)

    def _together(url: str, output_path: Path, cancel_event: threading.Event) -> None:
        # Both fetches must be running at once to pass the barrier
        barrier.wait()
        output_path.write_bytes(SOURCE_BYTES)

    cache = _cache(cache_dir, _together)
    errors: list[BaseException] = []

    def _request(key: str) -> None:
        try:
            cache.get(key)
        except BaseException as exc:
            errors.append(exc)

    threads = [threading.Thread(target=_request, args=(key,)) for key in ("aaaaaaaaaaa", "bbbbbbbbbbb")]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(10)

    assert errors == []
    assert sorted(p.name for p in cache_dir.iterdir()) == [
        "aaaaaaaaaaa_original.mp4",
        "bbbbbbbbbbb_original.mp4",
    ]
    cache.shutdown()


def test_remove_partials_clears_intermediate_files(cache_dir: Path) -> None:
    cache_dir.mkdir(parents=True)
    path = cache_dir / f"{VIDEO_KEY}_original.mp4"
    for name in (path.name, path.name + ".part", f"{path.stem}.f137.mp4", "other_original.mp4"):
        (cache_dir / name).write_bytes(b"x")

    DownloadCache(cache_dir, fetcher=StubFetcher()).remove_partials(path)

    assert [p.name for p in cache_dir.iterdir()] == ["other_original.mp4"]


def test_ytdlp_fetch_passes_output_and_cancel_hook(tmp_path: Path) -> None:
    ydl = MagicMock()
    ydl.__enter__.return_value = ydl
    output = tmp_path / "clip_original.mp4"
    cancel = threading.Event()

    with patch.object(download.yt_dlp, "YoutubeDL", return_value=ydl) as ctor:
        download.ytdlp_fetch("https://www.youtube.com/watch?v=abc12345678", output, cancel)

    opts = ctor.call_args.args[0]
    assert opts["outtmpl"] == str(output)
    assert opts["merge_output_format"] == "mp4"
    ydl.download.assert_called_once_with(["https://www.youtube.com/watch?v=abc12345678"])

    hook = opts["progress_hooks"][0]
    hook({"status": "downloading"})
    cancel.set()
    with pytest.raises(DownloadCancelled):
        hook({"status": "downloading"})
