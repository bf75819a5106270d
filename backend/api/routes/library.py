"""
Library scan routes.
"""
import asyncio
import logging
from typing import Set

from fastapi import APIRouter, HTTPException

from core import config
from services.scanner import scan_library, get_scan_status, is_scanning

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["library"])

# Strong references so running scans are not garbage collected
_scan_tasks: Set[asyncio.Task] = set()


async def _run_scan():
    try:
        await scan_library(config.VIDEO_DIRS)
    except Exception as e:
        logger.error(f"Background library scan failed: {e}")


def start_background_scan() -> asyncio.Task:
    task = asyncio.create_task(_run_scan())
    _scan_tasks.add(task)
    task.add_done_callback(_scan_tasks.discard)
    return task


@router.post("/refresh", status_code=202)
async def refresh_library():
    """Start a library scan in the background."""
    if not config.VIDEO_DIRS:
        raise HTTPException(status_code=400, detail="No video directories configured")
    if is_scanning():
        raise HTTPException(status_code=409, detail="A library scan is already running")

    start_background_scan()
    logger.info("Library scan requested")
    return {"status": "ok", "message": "Library scan started"}


@router.get("/scan/status")
def scan_status():
    return get_scan_status()
