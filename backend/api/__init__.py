"""
API routes module.
"""
from api.routes.videos import router as videos_router
from api.routes.cache import router as cache_router
from api.routes.library import router as library_router

__all__ = ["videos_router", "cache_router", "library_router"]
