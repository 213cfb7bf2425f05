import logging
from functools import partial
from typing import Awaitable, Callable

import anyio
from fastapi import HTTPException, Request, Response

from mediarelay.const import STREAM_MEDIA_TYPE, STREAM_RESPONSE_HEADERS
from mediarelay.extractors.base import (
    BaseExtractor,
    ExtractorError,
    FetchFailedError,
    MediaNotFoundError,
    ParseFailedError,
)
from mediarelay.remuxer.format_selector import SelectionResult, select_formats
from mediarelay.remuxer.transcode_pipeline import TranscodeError, TranscodePipeline, open_stream
from mediarelay.remuxer.transcode_planner import build_pipeline_plan
from mediarelay.schemas import MediaMetadata, QualityTier
from mediarelay.utils.cache_utils import MetadataCache
from mediarelay.utils.http_utils import EnhancedStreamingResponse

logger = logging.getLogger(__name__)


async def get_media_metadata(url: str, cache: MetadataCache, extractor: BaseExtractor) -> MediaMetadata:
    """Return cached metadata for ``url`` or fetch and cache it. Failures are never cached."""
    metadata, hit = cache.get(url)
    if hit:
        logger.info(f"Cache HIT for URL: {url}")
        return metadata

    logger.info(f"Cache MISS for URL: {url}")
    metadata = await extractor.extract(url)
    cache.put(url, metadata)
    return metadata


def _log_selection(selection: SelectionResult) -> None:
    video, audio = selection.video, selection.audio
    if audio is not None:
        logger.info(
            f"Selected Video: {video.format_id} ({video.height}p, {video.vcodec}), "
            f"Audio: {audio.format_id} ({audio.acodec})"
        )
    else:
        logger.info(f"Selected Video: {video.format_id} ({video.height}p, {video.vcodec}), No separate audio")


async def run_until_disconnect(request: Request, func: Callable[[], Awaitable[Response]]) -> Response:
    """
    Run ``func`` while watching the client connection.

    A disconnect cancels ``func`` at its current ``await``, which stops an
    in-flight prober or a transcoder still waiting for its first chunk.
    Exceptions raised by ``func`` propagate unchanged.
    """
    outcome: dict = {}
    disconnected = False

    async with anyio.create_task_group() as task_group:

        async def watch() -> None:
            nonlocal disconnected
            while True:
                message = await request.receive()
                if message["type"] == "http.disconnect":
                    disconnected = True
                    task_group.cancel_scope.cancel()
                    return

        async def run() -> None:
            try:
                outcome["response"] = await func()
            except Exception as e:
                outcome["error"] = e
            finally:
                task_group.cancel_scope.cancel()

        task_group.start_soon(watch)
        task_group.start_soon(run)

    if disconnected:
        logger.info("Client disconnected before the stream started, request cancelled")
        response = outcome.get("response")
        if isinstance(response, EnhancedStreamingResponse):
            await response.body_iterator.aclose()
        raise HTTPException(status_code=499, detail="Client closed request")
    if "error" in outcome:
        raise outcome["error"]
    return outcome["response"]


async def handle_video_stream(
    request: Request,
    url: str,
    quality: QualityTier,
    cache: MetadataCache,
    extractor: BaseExtractor,
) -> Response:
    """
    Resolve, select, plan and start the live transcode for one request.

    Everything up to the first transcoded chunk runs under
    ``run_until_disconnect``; once streaming starts,
    ``EnhancedStreamingResponse`` takes over watching the connection.

    Args:
        request: The incoming request (HEAD requests stop before spawning the transcoder).
        url: The resource locator.
        quality: The requested quality tier.
        cache: The shared metadata cache.
        extractor: The metadata extractor used on a cache miss.

    Returns:
        A streaming fMP4 response.
    """
    logger.info(f"Processing request for URL: {url}, Quality: {quality.value}")
    return await run_until_disconnect(request, partial(_start_video_stream, request, url, quality, cache, extractor))


async def _start_video_stream(
    request: Request,
    url: str,
    quality: QualityTier,
    cache: MetadataCache,
    extractor: BaseExtractor,
) -> Response:
    try:
        metadata = await get_media_metadata(url, cache, extractor)
    except MediaNotFoundError as e:
        logger.info(f"Resource not found: {url}")
        raise HTTPException(status_code=404, detail="Video not found") from e
    except FetchFailedError as e:
        logger.error(f"Error getting video info: {e}\n{e.stderr}")
        raise HTTPException(status_code=500, detail="Failed to fetch video metadata") from e
    except ParseFailedError as e:
        logger.error(f"Error parsing video info: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch video metadata") from e
    except ExtractorError as e:
        logger.error(f"Extraction failed: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch video metadata") from e

    selection = select_formats(metadata, quality)
    if selection.video is None:
        raise HTTPException(status_code=404, detail="No suitable video format found")
    _log_selection(selection)

    if request.method == "HEAD":
        return Response(status_code=200, headers=STREAM_RESPONSE_HEADERS)

    plan = build_pipeline_plan(selection, metadata)
    pipeline = TranscodePipeline(plan.to_args())
    try:
        content = await open_stream(pipeline)
    except TranscodeError as e:
        logger.error(f"Streaming error: {e}\n{e.stderr_tail}")
        raise HTTPException(status_code=500, detail="Failed to start video stream") from e

    return EnhancedStreamingResponse(
        content=content,
        media_type=STREAM_MEDIA_TYPE,
        headers=STREAM_RESPONSE_HEADERS,
    )
