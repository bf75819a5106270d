"""
Library scanner.

Walks the configured video directories, registers every video file found
and drops registry rows whose files no longer exist.
"""
import os
import time
import asyncio
import logging
from typing import Dict, List, Any

from core.config import VIDEO_EXTENSIONS
from services.database import upsert_video, get_all_video_paths, delete_videos

logger = logging.getLogger(__name__)

_scan_lock = asyncio.Lock()
_scan_status: Dict[str, Any] = {
    "is_scanning": False,
    "last_scan_started": None,
    "last_scan_finished": None,
    "files_found": 0,
    "added": 0,
    "removed": 0,
    "error": None,
}


def is_video_file(filename: str) -> bool:
    return os.path.splitext(filename)[1].lower() in VIDEO_EXTENSIONS


def find_video_files(directories: List[str]) -> List[str]:
    """Absolute paths of all video files under the given directories."""
    found = []
    for directory in directories:
        if not os.path.isdir(directory):
            logger.warning(f"Video directory does not exist: {directory}")
            continue
        for root, _dirs, files in os.walk(directory):
            for name in files:
                if is_video_file(name):
                    found.append(os.path.abspath(os.path.join(root, name)))
    return found


def get_scan_status() -> Dict[str, Any]:
    return dict(_scan_status)


def is_scanning() -> bool:
    return _scan_lock.locked()


async def scan_library(directories: List[str]) -> Dict[str, Any]:
    """
    Synchronise the video registry with the files on disk.

    Returns the final scan status. Concurrent calls wait for the running scan.
    """
    async with _scan_lock:
        _scan_status.update({
            "is_scanning": True,
            "last_scan_started": time.time(),
            "files_found": 0,
            "added": 0,
            "removed": 0,
            "error": None,
        })
        try:
            paths = await asyncio.to_thread(find_video_files, directories)
            _scan_status["files_found"] = len(paths)

            added = 0
            for path in paths:
                try:
                    stat = os.stat(path)
                except OSError as e:
                    logger.warning(f"Skipping unreadable video {path}: {e}")
                    continue
                title = os.path.splitext(os.path.basename(path))[0]
                _, created = await upsert_video(path, title, stat.st_size, stat.st_mtime)
                if created:
                    added += 1

            on_disk = set(paths)
            registered = await get_all_video_paths()
            missing = [vid for path, vid in registered.items() if path not in on_disk]
            removed = await delete_videos(missing)

            _scan_status.update({"added": added, "removed": removed})
            logger.info(f"Library scan complete: {len(paths)} files, {added} added, {removed} removed")
        except Exception as e:
            _scan_status["error"] = str(e)
            logger.error(f"Library scan failed: {e}")
            raise
        finally:
            _scan_status["is_scanning"] = False
            _scan_status["last_scan_finished"] = time.time()

    return get_scan_status()
