"""
Server-side segment cache for video content.

Keeps fixed-size segments of frequently watched videos in memory so that
repeated range requests skip disk I/O. Admission is gated by popularity
(cache hits per video) and a per-video segment cap; eviction removes the
least popular videos' segments first.
"""
import asyncio
import logging
from typing import Optional

import pydantic

from core.config import (
    MAX_CACHE_SIZE_BYTES,
    CACHE_TTL_SECONDS,
    CACHE_CHECK_PERIOD_SECONDS,
    POPULARITY_THRESHOLD,
    MAX_SEGMENTS_PER_VIDEO,
    EVICTION_TARGET_RATIO,
)
from services.access_tracker import AccessTracker
from services.eviction import EvictionPolicy, bytes_to_free
from services.files import read_file_range
from services.segment_store import SegmentKey, SegmentStore

logger = logging.getLogger(__name__)


class CacheConfig(pydantic.BaseModel):
    """
    Runtime cache settings.

    Instances are immutable; updates build a new validated instance and swap
    it in, so a single admission decision always sees one consistent config.
    Accepts both field names and the camelCase aliases used by the admin API.
    """
    model_config = pydantic.ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    max_cache_size: int = pydantic.Field(MAX_CACHE_SIZE_BYTES, ge=1, alias="maxCacheSize")
    std_ttl: int = pydantic.Field(CACHE_TTL_SECONDS, ge=1, alias="stdTTL")
    checkperiod: int = pydantic.Field(CACHE_CHECK_PERIOD_SECONDS, ge=1)
    popularity_threshold: int = pydantic.Field(POPULARITY_THRESHOLD, ge=0, alias="popularityThreshold")
    max_segments_per_video: int = pydantic.Field(MAX_SEGMENTS_PER_VIDEO, ge=1, alias="maxSegmentsPerVideo")
    eviction_target_ratio: float = pydantic.Field(EVICTION_TARGET_RATIO, gt=0, le=1, alias="evictionTargetRatio")


def _field_name(name: str) -> str:
    for field, info in CacheConfig.model_fields.items():
        if info.alias == name:
            return field
    return name


class VideoCache:
    """
    In-memory cache of video segments.

    Features:
    - TTL expiry per entry (stamped at insertion; config changes do not
      re-evaluate existing entries)
    - Popularity gate: a video needs popularity_threshold hits before new
      segments are admitted (0 disables the gate)
    - Per-video segment cap and global byte budget
    - Least-popular-first eviction down to eviction_target_ratio of the budget
    - Async-safe admission with asyncio.Lock; file reads happen outside the lock
    """

    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        store: Optional[SegmentStore] = None,
        tracker: Optional[AccessTracker] = None,
        eviction: Optional[EvictionPolicy] = None,
    ):
        self._config = config or CacheConfig()
        self._store = store or SegmentStore()
        self._tracker = tracker or AccessTracker()
        self._eviction = eviction or EvictionPolicy()
        self._lock = asyncio.Lock()
        self._hits = 0
        self._misses = 0

    @property
    def config(self) -> CacheConfig:
        return self._config

    def get_cached_segment(self, video_id, segment_index: int) -> Optional[bytes]:
        """
        Get a segment from cache.

        A hit counts towards the video's popularity. A miss only updates the
        miss counter.
        """
        key = SegmentKey(str(video_id), int(segment_index))
        data = self._store.get(key)
        if data is not None:
            self._hits += 1
            self._tracker.record_hit(key.video_id)
            return data
        self._misses += 1
        return None

    async def cache_segment(self, video_id, segment_index: int, data: bytes) -> bool:
        """
        Store a segment, evicting less popular entries first if the budget
        would be exceeded. Returns False only for data larger than the whole
        budget.
        """
        key = SegmentKey(str(video_id), int(segment_index))
        async with self._lock:
            return self._store_segment(key, data, self._config)

    async def cache_segment_from_file(self, video_id, segment_index: int, file_path: str,
                                      start: int, end: int) -> bool:
        """
        Read bytes start..end (inclusive) of file_path and cache them as a segment.

        Returns True if the segment is cached (including when it already was),
        False if admission is refused or the file cannot be read. Never raises
        for I/O problems: caching is an optimization and callers serve from
        the file regardless.
        """
        key = SegmentKey(str(video_id), int(segment_index))

        async with self._lock:
            config = self._config
            refused = self._admission_check(key, config)
        if refused is not None:
            return refused

        try:
            data = await read_file_range(file_path, start, end)
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to read {file_path} [{start}-{end}] for {key}: {e}")
            return False

        async with self._lock:
            # Another admission may have landed while the file was being read
            refused = self._admission_check(key, config)
            if refused is not None:
                return refused
            stored = self._store_segment(key, data, config)
        if stored:
            logger.info(f"Cached {key} ({len(data)} bytes)")
        return stored

    def get_stats(self) -> dict:
        """Get cache statistics."""
        total_requests = self._hits + self._misses
        hit_rate = (self._hits / total_requests * 100) if total_requests > 0 else 0
        size = self._store.total_bytes()
        return {
            "items": len(self._store),
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate_percent": round(hit_rate, 1),
            "size_bytes": size,
            "size_mb": round(size / 1024 / 1024, 2),
            "max_size_mb": round(self._config.max_cache_size / 1024 / 1024, 2),
            "video_access": self._tracker.snapshot(),
        }

    def reset_stats(self):
        """Zero hit/miss counters and per-video popularity. Cached segments stay."""
        self._hits = 0
        self._misses = 0
        self._tracker.reset()
        logger.info("Cache statistics reset")

    async def clear(self):
        """Remove every cached segment. Popularity counters are kept."""
        async with self._lock:
            self._store.clear()
        logger.info("Cache cleared")

    async def update_config(self, **changes) -> CacheConfig:
        """
        Merge changes into the live config.

        Keys may be field names or their camelCase aliases. Raises
        pydantic.ValidationError (a ValueError) for unknown keys or invalid
        values, leaving the current config untouched.
        """
        async with self._lock:
            merged = self._config.model_dump()
            merged.update({_field_name(k): v for k, v in changes.items()})
            self._config = CacheConfig.model_validate(merged)
        logger.info(f"Cache configuration updated: {self._config.model_dump(by_alias=True)}")
        return self._config

    def purge_expired(self) -> int:
        return self._store.purge_expired()

    def count_segments(self, video_id) -> int:
        """Number of resident segments for a video."""
        video_id = str(video_id)
        return sum(1 for key in self._store.keys() if key.video_id == video_id)

    def _admission_check(self, key: SegmentKey, config: CacheConfig) -> Optional[bool]:
        """None if key may be admitted, otherwise the result to return."""
        if self._store.has(key):
            return True
        if self._tracker.count(key.video_id) < config.popularity_threshold:
            logger.debug(f"Not caching {key}: video below popularity threshold")
            return False
        if self.count_segments(key.video_id) >= config.max_segments_per_video:
            logger.debug(f"Not caching {key}: per-video segment limit reached")
            return False
        return None

    def _store_segment(self, key: SegmentKey, data: bytes, config: CacheConfig) -> bool:
        if len(data) > config.max_cache_size:
            logger.debug(f"Segment too large for cache: {len(data)} > {config.max_cache_size}")
            return False

        # Drop the entry being replaced first so it is neither counted nor picked as a victim
        self._store.remove(key)
        current = self._store.total_bytes()
        required = bytes_to_free(current, len(data), config.max_cache_size, config.eviction_target_ratio)
        if required > 0:
            self._eviction.evict(self._store, self._tracker, required)

        self._store.put(key, data, config.std_ttl)
        return True


async def cache_cleanup_task(cache: VideoCache):
    """
    Background task that purges expired segments every checkperiod seconds.
    """
    while True:
        await asyncio.sleep(cache.config.checkperiod)
        try:
            removed = cache.purge_expired()
            if removed:
                logger.info(f"Removed {removed} expired segments from cache")

            stats = cache.get_stats()
            if stats["items"] > 0:
                logger.info(f"Segment cache: {stats['items']} items, {stats['size_mb']} MB, "
                            f"{stats['hit_rate_percent']}% hit rate")
        except Exception as e:
            logger.error(f"Error in cache cleanup task: {e}")
