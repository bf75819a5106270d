"""
Core configuration and constants for the VOD server backend.
"""
import os

# Storage configuration
DATA_DIR = os.environ.get("DATA_DIR", "data")
DB_FILE = os.environ.get("DB_FILE", os.path.join(DATA_DIR, "videos.db"))

# Directories scanned for video files (os.pathsep-separated)
VIDEO_DIRS = [d for d in os.environ.get("VIDEO_DIRS", "").split(os.pathsep) if d]
VIDEO_EXTENSIONS = {".mp4", ".mkv", ".avi", ".mov", ".wmv", ".flv", ".webm", ".m4v", ".ts"}

# Segment configuration for range-aligned caching
SEGMENT_SIZE_BYTES = 2 * 1024 * 1024  # 2MB segments
STREAM_CHUNK_SIZE = 64 * 1024  # Read size when streaming from disk

# In-memory segment cache defaults (mutable at runtime via /api/cache/config)
MAX_CACHE_SIZE_BYTES = int(os.environ.get("MAX_CACHE_SIZE_BYTES", 500 * 1024 * 1024))  # 500 MB
CACHE_TTL_SECONDS = int(os.environ.get("CACHE_TTL_SECONDS", "3600"))  # 1 hour
CACHE_CHECK_PERIOD_SECONDS = int(os.environ.get("CACHE_CHECK_PERIOD_SECONDS", "600"))  # 10 minutes
POPULARITY_THRESHOLD = int(os.environ.get("POPULARITY_THRESHOLD", "0"))  # 0 disables the gate
MAX_SEGMENTS_PER_VIDEO = int(os.environ.get("MAX_SEGMENTS_PER_VIDEO", "3"))
EVICTION_TARGET_RATIO = float(os.environ.get("EVICTION_TARGET_RATIO", "0.8"))  # Evict down to 80%

# HTTP-level caching (client/proxy), independent of the server-side cache
STREAM_CACHE_MAX_AGE = 3600  # 1 hour
SEGMENT_CACHE_MAX_AGE = 86400  # 24 hours

# Allowed origins for CORS (comma-separated)
ALLOWED_ORIGINS = os.environ.get("ALLOWED_ORIGINS", "").split(",") if os.environ.get("ALLOWED_ORIGINS") else ["*"]

# Ensure directories exist
for directory in [DATA_DIR]:
    if not os.path.exists(directory):
        os.makedirs(directory)
