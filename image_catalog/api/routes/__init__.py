"""API routes."""
from fastapi import APIRouter

from image_catalog.core.config import settings

from . import health, images, tags

# Create versioned API router
api_router = APIRouter(prefix=settings.api_prefix)

# Include all route modules
api_router.include_router(health.router, tags=["health"])
api_router.include_router(images.router, tags=["images"])
api_router.include_router(tags.router, tags=["tags"])

__all__ = ["api_router"]
