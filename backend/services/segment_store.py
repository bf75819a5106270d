"""
In-memory segment storage with TTL expiry.

Holds immutable byte snapshots of video file regions, keyed by
(video id, segment index). Expired entries are never returned and are
purged lazily on access or by the periodic sweep.
"""
import time
import threading
from typing import Callable, Dict, List, NamedTuple, Optional


class SegmentKey(NamedTuple):
    """Composite cache key for one fixed-size segment of a video."""
    video_id: str
    segment_index: int

    def __str__(self) -> str:
        return f"video_{self.video_id}_segment_{self.segment_index}"


class CacheEntry(NamedTuple):
    data: bytes
    inserted_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class SegmentStore:
    """
    Keyed byte-buffer storage with per-entry expiry.

    Features:
    - Insertion order is preserved (dicts are ordered), which eviction uses
      as its tie-breaker
    - Thread-safe with threading.Lock; no operation suspends
    - Resident byte total kept in step with every put/remove/purge
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._entries: Dict[SegmentKey, CacheEntry] = {}
        self._total_bytes = 0
        self._clock = clock
        self._lock = threading.Lock()

    def put(self, key: SegmentKey, data: bytes, ttl_seconds: float):
        """Store data under key, replacing any existing entry."""
        now = self._clock()
        entry = CacheEntry(bytes(data), now, now + ttl_seconds)
        with self._lock:
            old = self._entries.pop(key, None)
            if old is not None:
                self._total_bytes -= len(old.data)
            self._entries[key] = entry
            self._total_bytes += len(entry.data)

    def get(self, key: SegmentKey) -> Optional[bytes]:
        """Return the stored bytes, or None if missing or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(self._clock()):
                self._drop_locked(key)
                return None
            return entry.data

    def has(self, key: SegmentKey) -> bool:
        return self.get(key) is not None

    def remove(self, key: SegmentKey) -> Optional[bytes]:
        """Remove an entry. Returns the removed bytes (None if it was absent or expired)."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            self._drop_locked(key)
            if entry.is_expired(self._clock()):
                return None
            return entry.data

    def keys(self) -> List[SegmentKey]:
        """Point-in-time snapshot of live keys, in insertion order."""
        with self._lock:
            self._purge_locked()
            return list(self._entries.keys())

    def total_bytes(self) -> int:
        with self._lock:
            self._purge_locked()
            return self._total_bytes

    def purge_expired(self) -> int:
        """Drop every expired entry. Returns the number removed."""
        with self._lock:
            return self._purge_locked()

    def clear(self):
        with self._lock:
            self._entries.clear()
            self._total_bytes = 0

    def __len__(self) -> int:
        return len(self.keys())

    def _drop_locked(self, key: SegmentKey):
        entry = self._entries.pop(key)
        self._total_bytes -= len(entry.data)

    def _purge_locked(self) -> int:
        now = self._clock()
        expired = [k for k, e in self._entries.items() if e.is_expired(now)]
        for key in expired:
            self._drop_locked(key)
        return len(expired)
