from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from mediarelay.extractors.base import BaseExtractor
from mediarelay.extractors.ytdlp import YtDlpExtractor
from mediarelay.handlers import handle_video_stream
from mediarelay.schemas import QualityTier
from mediarelay.utils.cache_utils import MetadataCache

video_router = APIRouter()


def get_metadata_cache(request: Request) -> MetadataCache:
    """The process-wide metadata cache created in the application lifespan."""
    return request.app.state.metadata_cache


def get_extractor() -> BaseExtractor:
    return YtDlpExtractor()


@video_router.head("/video")
@video_router.get("/video")
async def stream_video(
    request: Request,
    cache: Annotated[MetadataCache, Depends(get_metadata_cache)],
    extractor: Annotated[BaseExtractor, Depends(get_extractor)],
    url: Annotated[str | None, Query(description="The URL of the media resource to relay.")] = None,
    quality: Annotated[str | None, Query(description="Quality tier: low, medium or high (default).")] = None,
):
    """
    Relay a remote video as a live fragmented MP4 stream.

    The best matching formats for the quality tier are remuxed, or
    transcoded when their codecs are not H.264/H.265 and AAC.
    """
    if not url:
        raise HTTPException(status_code=400, detail="Missing 'url' parameter")

    return await handle_video_stream(request, url, QualityTier.parse(quality), cache, extractor)
