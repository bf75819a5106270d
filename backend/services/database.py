"""
SQLite database service for the video library.

Stores one row per registered video file: title, absolute path, size and
modification time. The streaming endpoints use it as their video lookup.
"""
import os
import time
import sqlite3
import logging
import aiosqlite
from typing import Optional, Dict, List, Any, Tuple
from contextlib import asynccontextmanager

from core import config

logger = logging.getLogger(__name__)

SORT_ORDERS = {
    "title_asc": "ORDER BY title COLLATE NOCASE ASC",
    "title_desc": "ORDER BY title COLLATE NOCASE DESC",
    "date_added_asc": "ORDER BY added_at ASC, id ASC",
    "date_added_desc": "ORDER BY added_at DESC, id DESC",
}


def get_db_connection() -> sqlite3.Connection:
    """Get a synchronous database connection (for init/migration)."""
    conn = sqlite3.connect(config.DB_FILE)
    conn.row_factory = sqlite3.Row
    return conn


@asynccontextmanager
async def get_async_db():
    """Get an async database connection."""
    db = await aiosqlite.connect(config.DB_FILE)
    db.row_factory = aiosqlite.Row
    try:
        yield db
    finally:
        await db.close()


def init_database():
    """Initialize database schema and run migrations."""
    db_dir = os.path.dirname(config.DB_FILE)
    if db_dir and not os.path.exists(db_dir):
        os.makedirs(db_dir)

    conn = get_db_connection()
    cursor = conn.cursor()

    # Create schema_version table first (for tracking migrations)
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS schema_version (
            version INTEGER PRIMARY KEY,
            applied_at REAL
        )
    """)

    cursor.execute("SELECT MAX(version) FROM schema_version")
    row = cursor.fetchone()
    current_version = row[0] if row and row[0] else 0

    migrations = [
        # Version 1: Initial schema
        """
        CREATE TABLE IF NOT EXISTS videos (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            title TEXT NOT NULL,
            path TEXT NOT NULL UNIQUE,
            size INTEGER DEFAULT 0,
            mtime REAL,
            added_at REAL
        )
        """,
        # Version 2: Index for title search/sort
        """
        CREATE INDEX IF NOT EXISTS idx_videos_title ON videos(title)
        """,
        # Version 3: Index for date-added sort
        """
        CREATE INDEX IF NOT EXISTS idx_videos_added_at ON videos(added_at)
        """,
    ]

    now = time.time()

    for i, migration_sql in enumerate(migrations, start=1):
        if i > current_version:
            logger.info(f"Running database migration v{i}...")
            cursor.execute(migration_sql)
            cursor.execute(
                "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                (i, now)
            )
            conn.commit()
            logger.info(f"Migration v{i} complete")

    conn.close()

    logger.info(f"Database initialized: {config.DB_FILE} (schema v{len(migrations)})")


def _row_to_video(row) -> Dict[str, Any]:
    return {
        "id": row["id"],
        "title": row["title"],
        "path": row["path"],
        "size": row["size"],
        "mtime": row["mtime"],
        "added_at": row["added_at"],
    }


# ============================================================================
# Video Operations
# ============================================================================

async def get_video_by_id(video_id: int) -> Optional[Dict[str, Any]]:
    """Get a single video, or None if it is not registered."""
    async with get_async_db() as db:
        cursor = await db.execute("SELECT * FROM videos WHERE id = ?", (video_id,))
        row = await cursor.fetchone()
        return _row_to_video(row) if row else None


async def get_videos_paginated(page: int = 1, limit: int = 50, search: Optional[str] = None,
                               sort: str = "date_added_desc") -> Tuple[List[Dict[str, Any]], int]:
    """Get one page of videos and the total count matching the search."""
    where = ""
    params: List[Any] = []
    if search:
        where = " WHERE title LIKE ? COLLATE NOCASE"
        params.append(f"%{search}%")

    order_by = SORT_ORDERS.get(sort, SORT_ORDERS["date_added_desc"])
    offset = (max(page, 1) - 1) * limit

    async with get_async_db() as db:
        cursor = await db.execute(f"SELECT COUNT(*) FROM videos{where}", params)
        row = await cursor.fetchone()
        total_count = row[0] if row else 0

        cursor = await db.execute(
            f"SELECT * FROM videos{where} {order_by} LIMIT ? OFFSET ?",
            params + [limit, offset]
        )
        rows = await cursor.fetchall()

    return [_row_to_video(r) for r in rows], total_count


async def upsert_video(path: str, title: str, size: int, mtime: float) -> Tuple[int, bool]:
    """
    Register a video file or refresh its size/mtime.

    Returns (video_id, created).
    """
    async with get_async_db() as db:
        cursor = await db.execute("SELECT id FROM videos WHERE path = ?", (path,))
        row = await cursor.fetchone()
        if row:
            await db.execute(
                "UPDATE videos SET size = ?, mtime = ? WHERE id = ?",
                (size, mtime, row["id"])
            )
            await db.commit()
            return row["id"], False

        cursor = await db.execute(
            "INSERT INTO videos (title, path, size, mtime, added_at) VALUES (?, ?, ?, ?, ?)",
            (title, path, size, mtime, time.time())
        )
        await db.commit()
        return cursor.lastrowid, True


async def get_all_video_paths() -> Dict[str, int]:
    """Map of registered path -> video id."""
    async with get_async_db() as db:
        cursor = await db.execute("SELECT id, path FROM videos")
        rows = await cursor.fetchall()
        return {row["path"]: row["id"] for row in rows}


async def delete_videos(video_ids: List[int]) -> int:
    """Delete videos by id. Returns number of rows deleted."""
    if not video_ids:
        return 0
    async with get_async_db() as db:
        placeholders = ",".join("?" for _ in video_ids)
        cursor = await db.execute(f"DELETE FROM videos WHERE id IN ({placeholders})", video_ids)
        await db.commit()
        return cursor.rowcount
