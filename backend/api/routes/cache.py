"""
Segment cache administration routes.
"""
import logging
from typing import Optional

import pydantic
from fastapi import APIRouter, Depends, HTTPException

from api.dependencies import get_video_cache
from services.cache import VideoCache

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/cache", tags=["cache"])


class CacheConfigUpdate(pydantic.BaseModel):
    """Partial cache configuration. Accepts camelCase or snake_case keys."""
    model_config = pydantic.ConfigDict(populate_by_name=True, extra="forbid")

    max_cache_size: Optional[int] = pydantic.Field(None, ge=1, alias="maxCacheSize")
    std_ttl: Optional[int] = pydantic.Field(None, ge=1, alias="stdTTL")
    checkperiod: Optional[int] = pydantic.Field(None, ge=1)
    popularity_threshold: Optional[int] = pydantic.Field(None, ge=0, alias="popularityThreshold")
    max_segments_per_video: Optional[int] = pydantic.Field(None, ge=1, alias="maxSegmentsPerVideo")
    eviction_target_ratio: Optional[float] = pydantic.Field(None, gt=0, le=1, alias="evictionTargetRatio")


@router.get("/stats")
def get_cache_stats(cache: VideoCache = Depends(get_video_cache)):
    """Returns hit/miss counters, resident size and per-video access counts."""
    return cache.get_stats()


@router.post("/stats/reset")
def reset_cache_stats(cache: VideoCache = Depends(get_video_cache)):
    cache.reset_stats()
    return {"status": "ok", "message": "Cache statistics reset"}


@router.post("/clear")
async def clear_cache(cache: VideoCache = Depends(get_video_cache)):
    await cache.clear()
    return {"status": "ok", "message": "Cache cleared successfully"}


@router.get("/config")
def get_cache_config(cache: VideoCache = Depends(get_video_cache)):
    return cache.config.model_dump(by_alias=True)


@router.api_route("/config", methods=["PATCH", "POST"])
async def update_cache_config(update: CacheConfigUpdate, cache: VideoCache = Depends(get_video_cache)):
    """
    Update runtime cache settings. Applies to subsequent admissions only;
    cached segments keep the TTL they were stored with.
    """
    changes = update.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No configuration fields provided")

    try:
        new_config = await cache.update_config(**changes)
    except ValueError as e:
        logger.warning(f"Rejected cache config update {changes}: {e}")
        raise HTTPException(status_code=422, detail="Invalid cache configuration")

    return {
        "status": "ok",
        "message": "Cache configuration updated successfully",
        "config": new_config.model_dump(by_alias=True),
    }
