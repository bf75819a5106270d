"""
Shared FastAPI dependencies.
"""
from fastapi import Request

from services.cache import VideoCache


def get_video_cache(request: Request) -> VideoCache:
    """The process-wide segment cache, created in the application lifespan."""
    return request.app.state.video_cache
