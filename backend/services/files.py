"""
Byte-range file access for video files.
"""
import logging
from typing import AsyncIterator

import aiofiles

from core.config import STREAM_CHUNK_SIZE

logger = logging.getLogger(__name__)


async def read_file_range(path: str, start: int, end: int) -> bytes:
    """
    Read bytes start..end (inclusive) from a file.

    Raises ValueError for an inverted range and OSError if the file cannot
    be read. A short read (file truncated since it was stat'ed) is returned
    as-is.
    """
    if start < 0 or end < start:
        raise ValueError(f"Invalid byte range {start}-{end}")
    async with aiofiles.open(path, 'rb') as f:
        await f.seek(start)
        return await f.read(end - start + 1)


async def open_at(path: str, offset: int):
    """Open a file for binary reading, positioned at offset."""
    f = await aiofiles.open(path, 'rb')
    try:
        await f.seek(offset)
    except BaseException:
        await f.close()
        raise
    return f


async def iter_file(f, length: int, head: bytes = b"",
                    chunk_size: int = STREAM_CHUNK_SIZE) -> AsyncIterator[bytes]:
    """
    Yield head, then up to length bytes from an already opened file, then close it.

    The file is closed in all cases, including when the consumer stops
    iterating early because the client went away.
    """
    remaining = length
    try:
        if head:
            yield head
        while remaining > 0:
            chunk = await f.read(min(chunk_size, remaining))
            if not chunk:
                break
            remaining -= len(chunk)
            yield chunk
    finally:
        await f.close()
