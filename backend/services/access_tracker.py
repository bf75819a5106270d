"""
Per-video access counters used as the popularity signal.
"""
import threading
from typing import Dict


class AccessTracker:
    """Counts cache hits per video id. Counters only grow until reset()."""

    def __init__(self):
        self._counts: Dict[str, int] = {}
        self._lock = threading.Lock()

    def record_hit(self, video_id: str):
        with self._lock:
            self._counts[video_id] = self._counts.get(video_id, 0) + 1

    def count(self, video_id: str) -> int:
        return self._counts.get(video_id, 0)

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._counts)

    def reset(self):
        """Zero all counters. Does not touch stored segments."""
        with self._lock:
            self._counts.clear()
