"""
VOD Server Backend - Main Application

This is the entry point for the FastAPI application.
Most logic lives in:
- core/: Configuration
- services/: Segment cache, video registry, library scanner
- api/routes/: REST API endpoints
"""
import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core import config
from services.cache import CacheConfig, VideoCache, cache_cleanup_task
from services.database import init_database
from api.routes.videos import router as videos_router, drain_admissions
from api.routes.cache import router as cache_router
from api.routes.library import router as library_router, start_background_scan

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


# ============================================================================
# Application Lifecycle
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - create the segment cache, start/stop background tasks."""
    init_database()

    app.state.video_cache = VideoCache(CacheConfig())
    logger.info(f"Segment cache ready: {app.state.video_cache.config.model_dump(by_alias=True)}")

    tasks = [
        asyncio.create_task(cache_cleanup_task(app.state.video_cache)),
    ]
    if config.VIDEO_DIRS:
        tasks.append(start_background_scan())
        logger.info(f"Scanning video directories: {', '.join(config.VIDEO_DIRS)}")
    logger.info("Started background tasks: cache cleanup")
    yield

    # Cancel and await all background tasks
    for task in tasks:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass  # Expected when task is cancelled
        except Exception as e:
            logger.warning(f"Error during task shutdown: {e}")

    # Let in-flight segment admissions finish before dropping the cache
    await drain_admissions()
    await app.state.video_cache.clear()
    logger.info("All background tasks shut down cleanly")


# ============================================================================
# App Initialization
# ============================================================================

app = FastAPI(title="VOD Server Backend", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.ALLOWED_ORIGINS,
    allow_credentials=True if config.ALLOWED_ORIGINS != ["*"] else False,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Range", "Accept-Ranges", "Content-Length", "ETag"],
)

# Include API routers
app.include_router(videos_router)
app.include_router(cache_router)
app.include_router(library_router)


@app.get("/")
def read_root():
    """Health check endpoint."""
    return {"status": "ok", "service": "VOD Server Backend"}


# ============================================================================
# Entry Point
# ============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
