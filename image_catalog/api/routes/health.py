"""Health check endpoints."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from image_catalog.api.dependencies import get_cache_service
from image_catalog.core.database import get_db
from image_catalog.services import CacheService

logger = logging.getLogger(__name__)

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    database: str
    cache: str


@router.get("/health", response_model=HealthResponse)
async def health_check(
    db: AsyncSession = Depends(get_db),
    cache: CacheService = Depends(get_cache_service),
):
    """
    Health check endpoint.

    The service is healthy as long as the database answers; a missing
    cache only degrades it.
    """
    # Check database
    try:
        await db.execute(text("SELECT 1"))
        db_status = "healthy"
    except Exception as e:
        logger.warning(f"Database health check failed: {e}")
        db_status = "unhealthy"

    # Check cache
    if not cache.enabled:
        cache_status = "disabled"
    elif await cache.ping():
        cache_status = "healthy"
    else:
        cache_status = "unavailable"

    if db_status != "healthy":
        status = "unhealthy"
    elif cache_status == "unavailable":
        status = "degraded"
    else:
        status = "healthy"

    return HealthResponse(
        status=status,
        database=db_status,
        cache=cache_status
    )
