"""
Popularity-aware eviction for the segment cache.

Entries belonging to the least-hit videos are removed first. Ties keep
insertion order, so among equally popular videos the oldest segment goes
first. A frequently watched video keeps its segments even if they were
inserted long ago, which plain LRU would not do.
"""
import logging
from typing import List

from services.access_tracker import AccessTracker
from services.segment_store import SegmentKey, SegmentStore

logger = logging.getLogger(__name__)


def bytes_to_free(current_bytes: int, incoming_bytes: int, max_size: int, target_ratio: float) -> int:
    """
    Bytes that must be evicted before admitting incoming_bytes.

    Returns 0 while the projected total fits the budget. Once it does not,
    the target is target_ratio of the budget rather than the budget itself,
    leaving headroom so that back-to-back admissions near the limit do not
    each trigger another eviction.
    """
    projected = current_bytes + incoming_bytes
    if projected <= max_size:
        return 0
    return max(0, projected - int(max_size * target_ratio))


class EvictionPolicy:
    """Selects and removes least-popular segments until enough space is freed."""

    def select_victims(self, store: SegmentStore, tracker: AccessTracker) -> List[SegmentKey]:
        """All live keys ranked for eviction, least popular first."""
        keys = store.keys()
        # sorted() is stable, so insertion order breaks ties
        return sorted(keys, key=lambda k: tracker.count(k.video_id))

    def evict(self, store: SegmentStore, tracker: AccessTracker, required_bytes: int) -> int:
        """
        Remove entries in ranked order until at least required_bytes are freed.

        Returns the number of bytes actually freed, which may be less than
        required_bytes if the store runs out of entries.
        """
        if required_bytes <= 0:
            return 0

        freed = 0
        evicted = 0
        for key in self.select_victims(store, tracker):
            if freed >= required_bytes:
                break
            data = store.remove(key)
            if data is None:
                continue  # Expired between snapshot and removal
            freed += len(data)
            evicted += 1
            logger.debug(f"Evicted {key} (access count {tracker.count(key.video_id)}), freed {len(data)} bytes")

        logger.info(f"Segment cache eviction freed {freed / 1024 / 1024:.2f} MB ({evicted} segments)")
        return freed
