"""Compose the acquisition and synthesis steps into one clip job."""

from __future__ import annotations

import logging
import random
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional

from . import config
from .config import ClipWindowConfig
from .errors import ClipError
from .helpers.logging import log_step
from .helpers.media import probe_media_duration
from .steps.download import DownloadCache
from .steps.metadata import Extractor, VideoMetadata, fetch_gated_metadata, fetch_metadata
from .steps.transcode import DEFAULT_PROFILE, Runner, TranscodeProfile, render_sample_clip, transcode_clip
from .steps.window import ClipWindow, plan_clip_window
from .store import ClipIdGenerator, FileSystemStore, ProcessedClip

logger = logging.getLogger(__name__)

Probe = Callable[[Path], Optional[float]]


@dataclass(frozen=True)
class ClipResult:
    metadata: VideoMetadata
    window: ClipWindow
    clip: ProcessedClip

    @property
    def url(self) -> str:
        return f"/api/videos/{self.clip.clip_id}"

    def to_payload(self) -> dict[str, Any]:
        return {
            "success": True,
            "videoId": self.clip.clip_id,
            "url": self.url,
            "originalTitle": self.metadata.title,
            "originalAuthor": self.metadata.author,
            "duration": self.window.duration_seconds,
            "clipStart": self.window.start_seconds,
            "message": "Viral clip created successfully!",
        }


class ClipPipeline:
    """Run metadata, download, window, transcode and store for one video key.

    Every collaborator is injectable; the defaults talk to yt-dlp and ffmpeg.
    """

    def __init__(
        self,
        *,
        download_cache: DownloadCache,
        processed_store: FileSystemStore,
        extractor: Extractor | None = None,
        runner: Runner | None = None,
        probe: Probe = probe_media_duration,
        window_config: ClipWindowConfig | None = None,
        rng: random.Random | None = None,
        id_generator: ClipIdGenerator | None = None,
        profile: TranscodeProfile = DEFAULT_PROFILE,
        metadata_timeout: float | None = None,
        transcode_timeout: float | None = None,
        min_video_seconds: float | None = None,
        max_video_seconds: float | None = None,
    ):
        self.download_cache = download_cache
        self.processed_store = processed_store
        self.temp_store = FileSystemStore(download_cache.directory)
        self.extractor = extractor
        self.runner = runner
        self.probe = probe
        self.window_config = window_config
        self.rng = rng
        self.id_generator = id_generator or ClipIdGenerator()
        self.profile = profile
        self.metadata_timeout = metadata_timeout
        self.transcode_timeout = transcode_timeout
        self.min_video_seconds = min_video_seconds
        self.max_video_seconds = max_video_seconds
        self._sample_lock = threading.Lock()

    @classmethod
    def from_config(cls) -> "ClipPipeline":
        return cls(
            download_cache=DownloadCache(config.TEMP_DIR),
            processed_store=FileSystemStore(config.PROCESSED_DIR, suffix=".mp4"),
        )

    def ensure_directories(self) -> None:
        self.download_cache.directory.mkdir(parents=True, exist_ok=True)
        self.processed_store.directory.mkdir(parents=True, exist_ok=True)

    def stores(self) -> list[FileSystemStore]:
        return [self.temp_store, self.processed_store]

    def fetch_info(self, key: str) -> VideoMetadata:
        return fetch_metadata(key, extractor=self.extractor, timeout=self.metadata_timeout)

    def _source_duration(self, path: Path, metadata: VideoMetadata) -> float:
        probed = self.probe(path)
        if probed is None:
            return metadata.duration_seconds
        return min(probed, metadata.duration_seconds)

    def process(self, key: str) -> ClipResult:
        """Produce a vertical clip for ``key`` and return where it is stored."""

        logger.info("Processing video: %s", key)
        with log_step("Fetching metadata", logger):
            metadata = fetch_gated_metadata(
                key,
                extractor=self.extractor,
                timeout=self.metadata_timeout,
                min_seconds=self.min_video_seconds,
                max_seconds=self.max_video_seconds,
            )

        with log_step("Downloading source", logger):
            source = self.download_cache.get(key)

        with log_step("Planning clip window", logger):
            window = plan_clip_window(
                self._source_duration(source.path, metadata),
                window_config=self.window_config,
                rng=self.rng,
            )
            logger.info(
                "Clip window for %s: %.3fs +%.3fs", key, window.start_seconds, window.duration_seconds
            )

        clip_id = self.id_generator.next_id(key)
        output = self.processed_store.path_for(clip_id)
        with log_step("Transcoding clip", logger):
            size = transcode_clip(
                source.path,
                output,
                window,
                profile=self.profile,
                runner=self.runner,
                timeout=self.transcode_timeout,
            )

        clip = ProcessedClip(clip_id=clip_id, path=output, size_bytes=size, created_at=time.time())
        logger.info("Viral clip created: %s", clip.path.name)
        return ClipResult(metadata=metadata, window=window, clip=clip)

    def ensure_sample(self) -> None:
        """Render the placeholder clip unless a valid one is already stored."""

        with self._sample_lock:
            stat = self.processed_store.stat(config.SAMPLE_CLIP_ID)
            if stat is not None and stat.size_bytes > config.MIN_OUTPUT_BYTES:
                return
            with log_step("Rendering sample clip", logger):
                try:
                    render_sample_clip(
                        self.processed_store.path_for(config.SAMPLE_CLIP_ID),
                        profile=self.profile,
                        runner=self.runner,
                        timeout=self.transcode_timeout,
                    )
                except ClipError as exc:
                    exc.public_message = "Failed to generate sample video"
                    raise

    def shutdown(self) -> None:
        self.download_cache.shutdown()


__all__ = ["ClipPipeline", "ClipResult"]
