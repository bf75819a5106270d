"""
Core module exports.
"""
from core.config import (
    DATA_DIR,
    DB_FILE,
    VIDEO_DIRS,
    VIDEO_EXTENSIONS,
    SEGMENT_SIZE_BYTES,
    STREAM_CHUNK_SIZE,
    MAX_CACHE_SIZE_BYTES,
    CACHE_TTL_SECONDS,
    CACHE_CHECK_PERIOD_SECONDS,
    POPULARITY_THRESHOLD,
    MAX_SEGMENTS_PER_VIDEO,
    EVICTION_TARGET_RATIO,
    STREAM_CACHE_MAX_AGE,
    SEGMENT_CACHE_MAX_AGE,
)

__all__ = [
    "DATA_DIR",
    "DB_FILE",
    "VIDEO_DIRS",
    "VIDEO_EXTENSIONS",
    "SEGMENT_SIZE_BYTES",
    "STREAM_CHUNK_SIZE",
    "MAX_CACHE_SIZE_BYTES",
    "CACHE_TTL_SECONDS",
    "CACHE_CHECK_PERIOD_SECONDS",
    "POPULARITY_THRESHOLD",
    "MAX_SEGMENTS_PER_VIDEO",
    "EVICTION_TARGET_RATIO",
    "STREAM_CACHE_MAX_AGE",
    "SEGMENT_CACHE_MAX_AGE",
]
