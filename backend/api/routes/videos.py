"""
Video listing and streaming API routes.

Streaming honours HTTP byte ranges. Requests starting on a segment boundary
are served from the segment cache when possible; misses are streamed from
disk straight away while the segment is admitted to the cache in the
background.
"""
import asyncio
import logging
import mimetypes
from typing import Optional, Set

import aiofiles.os
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from starlette.responses import Response, StreamingResponse

from api.dependencies import get_video_cache
from core.config import STREAM_CACHE_MAX_AGE, SEGMENT_CACHE_MAX_AGE
from services.cache import VideoCache
from services.database import get_video_by_id, get_videos_paginated
from services.files import open_at, iter_file
from services.ranges import (
    RangeNotSatisfiable,
    parse_range_header,
    resolve_byte_range,
    get_segment_index,
    is_segment_aligned,
    segment_bounds,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["videos"])

# Strong references so detached admissions are not garbage collected
_admission_tasks: Set[asyncio.Task] = set()


def _media_type(path: str) -> str:
    media_type, _ = mimetypes.guess_type(path)
    if media_type and media_type.startswith("video/"):
        return media_type
    return "video/mp4"


async def _get_video_or_404(video_id: int) -> dict:
    video = await get_video_by_id(video_id)
    if not video:
        raise HTTPException(status_code=404, detail="Video not found")
    return video


async def _stat_video(video: dict):
    try:
        return await aiofiles.os.stat(video["path"])
    except OSError as e:
        logger.error(f"Failed to stat video {video['id']} at {video['path']}: {e}")
        raise HTTPException(status_code=500, detail="Failed to stream video")


async def _admit_segment(cache: VideoCache, video_id: int, segment_index: int,
                         path: str, start: int, end: int):
    """Background admission of one segment; outcome only affects later requests."""
    try:
        await cache.cache_segment_from_file(video_id, segment_index, path, start, end)
    except Exception as e:
        logger.error(f"Error caching segment {segment_index} of video {video_id}: {e}")


def start_admission(cache: VideoCache, video_id: int, segment_index: int,
                    path: str, start: int, end: int) -> asyncio.Task:
    """
    Admit a segment in a detached task.

    The task is independent of the response that triggered it, so it still
    completes if the client disconnects mid-stream.
    """
    task = asyncio.create_task(_admit_segment(cache, video_id, segment_index, path, start, end))
    _admission_tasks.add(task)
    task.add_done_callback(_admission_tasks.discard)
    return task


async def drain_admissions():
    """Wait for every in-flight segment admission to finish."""
    while _admission_tasks:
        await asyncio.gather(*list(_admission_tasks), return_exceptions=True)


async def _stream_from_file(path: str, offset: int, length: int, status_code: int, headers: dict,
                            head: bytes = b""):
    # Open BEFORE returning the response: open failures must surface as 500
    try:
        video_file = await open_at(path, offset)
    except OSError as e:
        logger.error(f"Failed to open {path} for streaming: {e}")
        raise HTTPException(status_code=500, detail="Failed to stream video")

    return StreamingResponse(
        iter_file(video_file, length, head=head),
        status_code=status_code,
        headers=headers,
        media_type=_media_type(path),
    )


async def serve_byte_range(cache: VideoCache, video_id: int, path: str, start: int, end: int,
                           file_size: int, status_code: int, headers: dict) -> Response:
    """
    Serve bytes start..end (inclusive) of a video file.

    Only segment-aligned starts use the cache. Unaligned ranges (mid-segment
    seeks) read straight through so that cache keys stay one per segment.
    """
    length = end - start + 1
    headers["Content-Length"] = str(max(length, 0))
    if length <= 0:
        return Response(content=b"", status_code=status_code, headers=headers, media_type=_media_type(path))

    if not is_segment_aligned(start):
        return await _stream_from_file(path, start, length, status_code, headers)

    segment_index = get_segment_index(start)
    cached = cache.get_cached_segment(video_id, segment_index)
    if cached is not None:
        logger.info(f"CACHE HIT: video {video_id} segment {segment_index} ({len(cached)} bytes)")
        if len(cached) >= length:
            return Response(
                content=cached if len(cached) == length else cached[:length],
                status_code=status_code,
                headers=headers,
                media_type=_media_type(path),
            )
        # Range runs past the cached segment: send it, then continue from disk
        return await _stream_from_file(
            path, start + len(cached), length - len(cached), status_code, headers, head=cached
        )

    response = await _stream_from_file(path, start, length, status_code, headers)
    seg_start, seg_end = segment_bounds(segment_index, file_size)
    start_admission(cache, video_id, segment_index, path, seg_start, seg_end)
    return response


@router.get("/videos")
async def list_videos(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    search: Optional[str] = Query(None, description="Case-insensitive title filter"),
    sort: str = Query("date_added_desc", description="title_asc, title_desc, date_added_asc or date_added_desc"),
):
    """Returns one page of registered videos."""
    try:
        videos, total_count = await get_videos_paginated(page, limit, search, sort)
    except Exception as e:
        logger.error(f"Error fetching videos: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch videos")

    return {
        "videos": videos,
        "total_count": total_count,
        "page": page,
        "limit": limit,
    }


@router.get("/videos/{video_id}")
async def get_video(video_id: int):
    return await _get_video_or_404(video_id)


@router.get("/videos/{video_id}/stream")
async def stream_video(video_id: int, request: Request, cache: VideoCache = Depends(get_video_cache)):
    """
    Stream a video, honouring the Range header.

    Without a Range header the whole file is returned with 200; otherwise 206
    with Content-Range, or 416 if the range starts beyond the file.
    """
    video = await _get_video_or_404(video_id)
    stat = await _stat_video(video)
    file_size = stat.st_size

    headers = {
        "Accept-Ranges": "bytes",
        "Cache-Control": f"public, max-age={STREAM_CACHE_MAX_AGE}",
        "ETag": f'"{video_id}-{int(stat.st_mtime * 1000)}"',
    }

    range_spec = parse_range_header(request.headers.get("range"))
    if range_spec is None:
        return await serve_byte_range(cache, video_id, video["path"], 0, file_size - 1, file_size, 200, headers)

    try:
        start, end = resolve_byte_range(range_spec, file_size)
    except RangeNotSatisfiable:
        raise HTTPException(
            status_code=416,
            detail="Range Not Satisfiable",
            headers={"Content-Range": f"bytes */{file_size}"},
        )

    headers["Content-Range"] = f"bytes {start}-{end}/{file_size}"
    return await serve_byte_range(cache, video_id, video["path"], start, end, file_size, 206, headers)


@router.get("/videos/{video_id}/segments/{segment_index}")
async def stream_segment(video_id: int, segment_index: int, cache: VideoCache = Depends(get_video_cache)):
    """Stream one whole fixed-size segment of a video."""
    video = await _get_video_or_404(video_id)
    stat = await _stat_video(video)
    file_size = stat.st_size

    try:
        start, end = segment_bounds(segment_index, file_size)
    except RangeNotSatisfiable:
        raise HTTPException(
            status_code=416,
            detail=f"Segment {segment_index} is beyond the file size",
            headers={"Content-Range": f"bytes */{file_size}"},
        )

    headers = {
        "Accept-Ranges": "bytes",
        "Cache-Control": f"public, max-age={SEGMENT_CACHE_MAX_AGE}",
        "ETag": f'"{video_id}-{segment_index}-{int(stat.st_mtime * 1000)}"',
        "Content-Range": f"bytes {start}-{end}/{file_size}",
    }
    return await serve_byte_range(cache, video_id, video["path"], start, end, file_size, 206, headers)
