"""
HTTP byte-range parsing and segment alignment helpers.
"""
from typing import Optional, Tuple

from core.config import SEGMENT_SIZE_BYTES


class RangeNotSatisfiable(Exception):
    """Requested range lies outside the file."""

    def __init__(self, file_size: int):
        super().__init__(f"Range not satisfiable for size {file_size}")
        self.file_size = file_size


def parse_range_header(range_header: Optional[str]) -> Optional[Tuple[Optional[int], Optional[int]]]:
    """
    Parse a single-range header like 'bytes=100-', 'bytes=100-200' or 'bytes=-500'.

    Returns (start, end) where either side may be None, or None when the header
    is absent, malformed or asks for multiple ranges (serve the whole file).
    A suffix range 'bytes=-500' is returned as (None, 500).
    """
    if not range_header or not range_header.startswith("bytes="):
        return None
    range_spec = range_header[6:].strip()  # Remove 'bytes='
    if "," in range_spec or "-" not in range_spec:
        return None
    first, _, last = range_spec.partition("-")
    try:
        start = int(first) if first.strip() else None
        end = int(last) if last.strip() else None
    except ValueError:
        return None
    if start is None and end is None:
        return None
    if (start is not None and start < 0) or (end is not None and end < 0):
        return None
    return (start, end)


def resolve_byte_range(range_spec: Tuple[Optional[int], Optional[int]], file_size: int) -> Tuple[int, int]:
    """
    Turn a parsed range into inclusive (start, end) bounds within the file.

    The end is clamped to the last byte. Raises RangeNotSatisfiable if the
    start lies beyond the file or the range is empty.
    """
    start, end = range_spec
    if start is None:
        # Suffix range: last N bytes
        if not end:
            raise RangeNotSatisfiable(file_size)
        start = max(0, file_size - end)
        end = file_size - 1
    elif end is None or end >= file_size:
        end = file_size - 1

    if start >= file_size or end < start:
        raise RangeNotSatisfiable(file_size)
    return start, end


def get_segment_index(byte_pos: int, segment_size: int = SEGMENT_SIZE_BYTES) -> int:
    """Get the segment number containing a byte position."""
    return byte_pos // segment_size


def is_segment_aligned(byte_pos: int, segment_size: int = SEGMENT_SIZE_BYTES) -> bool:
    return byte_pos % segment_size == 0


def segment_bounds(segment_index: int, file_size: int, segment_size: int = SEGMENT_SIZE_BYTES) -> Tuple[int, int]:
    """Inclusive byte bounds of a segment, with the last one cut at end of file."""
    start = segment_index * segment_size
    if segment_index < 0 or start >= file_size:
        raise RangeNotSatisfiable(file_size)
    return start, min(start + segment_size - 1, file_size - 1)
