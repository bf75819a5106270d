"""
Services module exports.
"""
from services.segment_store import SegmentKey, SegmentStore
from services.access_tracker import AccessTracker
from services.eviction import EvictionPolicy, bytes_to_free
from services.cache import CacheConfig, VideoCache, cache_cleanup_task
from services.ranges import (
    RangeNotSatisfiable,
    parse_range_header,
    resolve_byte_range,
    get_segment_index,
    is_segment_aligned,
    segment_bounds,
)

__all__ = [
    "SegmentKey",
    "SegmentStore",
    "AccessTracker",
    "EvictionPolicy",
    "bytes_to_free",
    "CacheConfig",
    "VideoCache",
    "cache_cleanup_task",
    "RangeNotSatisfiable",
    "parse_range_header",
    "resolve_byte_range",
    "get_segment_index",
    "is_segment_aligned",
    "segment_bounds",
]
