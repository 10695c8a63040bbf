"""FastAPI application exposing the viral clip pipeline."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator

from fastapi import APIRouter, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ConfigDict, Field, model_validator

from . import config
from .errors import ClipError, MetadataUnavailable, RangeNotSatisfiable
from .helpers.cleanup import RetentionSweeper
from .pipeline import ClipPipeline
from .rate_limit import RateLimiter
from .serving import build_asset_response
from .steps.resolve import require_video_key, resolve_video_key

logger = logging.getLogger(__name__)


class ProcessRequest(BaseModel):
    """Payload for creating a clip from a YouTube video."""

    model_config = ConfigDict(populate_by_name=True)

    video_id: str | None = Field(default=None, alias="videoId")
    url: str | None = Field(default=None)

    @model_validator(mode="after")
    def _ensure_source(self) -> "ProcessRequest":
        provided = [
            value for value in (self.video_id, self.url) if isinstance(value, str) and value.strip()
        ]
        if not provided:
            raise ValueError("Video ID is required")
        if len(provided) > 1:
            raise ValueError("Provide either a video ID or a URL, not both.")
        return self

    @property
    def source(self) -> str:
        return (self.video_id or self.url or "").strip()


class ValidateRequest(BaseModel):
    url: str = ""


def _error_response(
    status_code: int, message: str, headers: dict[str, str] | None = None
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message},
        headers=headers,
    )


def _pipeline(request: Request) -> ClipPipeline:
    return request.app.state.pipeline


def _client_key(request: Request) -> str:
    return request.client.host if request.client else "unknown"


router = APIRouter()


@router.post("/api/process")
async def process_video(payload: ProcessRequest, request: Request) -> dict[str, Any]:
    """Resolve, download and transcode a video into a vertical clip."""

    limiter: RateLimiter = request.app.state.rate_limiter
    if not limiter.allow(_client_key(request)):
        return _error_response(
            status.HTTP_429_TOO_MANY_REQUESTS,
            "Too many requests from this IP, please try again later.",
        )

    key = require_video_key(payload.source)
    pipeline = _pipeline(request)
    try:
        result = await asyncio.to_thread(pipeline.process, key)
    except ClipError:
        raise
    except Exception as exc:
        logger.exception("Processing error for %s", key)
        raise ClipError(f"unexpected failure: {exc}") from exc
    return result.to_payload()


@router.get("/api/videos/sample")
async def get_sample_video(request: Request) -> Response:
    """Stream the placeholder clip, rendering it on first use."""

    pipeline = _pipeline(request)
    await asyncio.to_thread(pipeline.ensure_sample)
    return build_asset_response(
        pipeline.processed_store, config.SAMPLE_CLIP_ID, request.headers.get("range")
    )


@router.get("/api/videos/{clip_id}")
async def get_video(clip_id: str, request: Request) -> Response:
    """Stream a processed clip, honouring single byte-range requests."""

    return build_asset_response(
        _pipeline(request).processed_store, clip_id, request.headers.get("range")
    )


@router.get("/api/status/{clip_id}")
async def get_status(clip_id: str, request: Request) -> dict[str, Any]:
    if not _pipeline(request).processed_store.exists(clip_id):
        return _error_response(status.HTTP_404_NOT_FOUND, "Video not found")
    return {"id": clip_id, "status": "completed", "progress": 100}


@router.get("/api/info/{video_id}")
async def get_video_info(video_id: str, request: Request) -> dict[str, Any]:
    """Return metadata for ``video_id`` without downloading anything."""

    key = require_video_key(video_id)
    try:
        metadata = await asyncio.to_thread(_pipeline(request).fetch_info, key)
    except MetadataUnavailable as exc:
        return _error_response(status.HTTP_404_NOT_FOUND, exc.public_message)
    except ClipError:
        raise
    except Exception as exc:
        logger.exception("Info lookup failed for %s", key)
        raise ClipError(
            f"unexpected failure: {exc}", public_message="Failed to get video info"
        ) from exc
    return {"success": True, **metadata.to_payload()}


@router.post("/api/validate")
async def validate_url(payload: ValidateRequest) -> dict[str, Any]:
    key = resolve_video_key(payload.url)
    return {"success": True, "isValid": key is not None, "videoId": key}


@router.get("/health")
async def health(request: Request) -> dict[str, Any]:
    return {
        "status": "Server is running properly",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": request.app.state.environment,
    }


async def _handle_clip_error(request: Request, exc: ClipError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc)
    else:
        logger.info("%s on %s: %s", type(exc).__name__, request.url.path, exc)
    headers = None
    if isinstance(exc, RangeNotSatisfiable):
        headers = {"Content-Range": f"bytes */{exc.size}", "Accept-Ranges": "bytes"}
    return _error_response(exc.status_code, exc.public_message, headers)


async def _handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error on %s", request.url.path, exc_info=exc)
    return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, ClipError.public_message)


async def _handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    message = "Invalid request body"
    errors = exc.errors()
    if errors:
        raw = str(errors[0].get("msg") or message)
        message = raw.removeprefix("Value error, ")
    return _error_response(status.HTTP_400_BAD_REQUEST, message)


def create_app(
    pipeline: ClipPipeline | None = None,
    *,
    settings: config.ServiceSettings | None = None,
    run_sweeper: bool = True,
) -> FastAPI:
    """Build the FastAPI app around ``pipeline``.

    The retention sweeper starts with the application lifespan, sweeping
    once immediately and then on its interval; it stops on shutdown.
    """

    service = settings or config.SERVICE
    clip_pipeline = pipeline or ClipPipeline.from_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        clip_pipeline.ensure_directories()
        sweeper = RetentionSweeper(clip_pipeline.stores()) if run_sweeper else None
        if sweeper:
            sweeper.start()
        logger.info(
            "Viral clip service running on %s:%d (%s)", service.host, service.port, service.environment
        )
        try:
            yield
        finally:
            logger.info("Shutting down viral clip service")
            if sweeper:
                sweeper.stop()
                sweeper.run_once()
            clip_pipeline.shutdown()

    app = FastAPI(title="Viral Clip API", lifespan=lifespan)
    app.state.pipeline = clip_pipeline
    app.state.environment = service.environment
    app.state.rate_limiter = RateLimiter(service.rate_window_seconds, service.rate_max_requests)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=service.cors_allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Content-Range", "Accept-Ranges", "Content-Length"],
    )
    app.add_exception_handler(ClipError, _handle_clip_error)
    app.add_exception_handler(RequestValidationError, _handle_validation_error)
    app.add_exception_handler(Exception, _handle_unexpected_error)
    app.include_router(router)
    return app


app = create_app()


__all__ = ["ProcessRequest", "ValidateRequest", "app", "create_app", "router"]
