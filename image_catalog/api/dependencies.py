"""Dependency injection for FastAPI routes.

Process-wide collaborators (storage, cache, event publisher) are built once.
Stores and services are request-scoped: both stores share the request's
session, so they commit and roll back together.
"""
from typing import Optional

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from image_catalog.core.config import settings
from image_catalog.core.database import get_db
from image_catalog.core.redis import redis_client
from image_catalog.repositories import ImageRepository, TagRepository
from image_catalog.repositories.interfaces import ImageStore, TagStore
from image_catalog.services import (
    CacheService,
    EventPublisher,
    ImageService,
    LocalStorageService,
    LoggingEventPublisher,
    StorageBackend,
    TagService,
    ValidationService,
)


# Singleton service instances
_storage_service: Optional[StorageBackend] = None
_cache_service: Optional[CacheService] = None
_event_publisher: Optional[EventPublisher] = None
_validation_service = ValidationService()


def get_storage_service() -> StorageBackend:
    """Get storage service (singleton)."""
    global _storage_service
    if _storage_service is None:
        _storage_service = LocalStorageService(settings.storage_root, settings.storage_public_url)
    return _storage_service


def get_cache_service() -> CacheService:
    """Get cache service (singleton); disabled when caching is switched off."""
    global _cache_service
    if _cache_service is None:
        _cache_service = CacheService.from_settings(redis_client, settings)
    return _cache_service


def get_event_publisher() -> EventPublisher:
    global _event_publisher
    if _event_publisher is None:
        _event_publisher = LoggingEventPublisher()
    return _event_publisher


def get_validation_service() -> ValidationService:
    return _validation_service


# Request-scoped stores and services


async def get_image_store(db: AsyncSession = Depends(get_db)) -> ImageStore:
    return ImageRepository(db)


async def get_tag_store(db: AsyncSession = Depends(get_db)) -> TagStore:
    return TagRepository(db)


async def get_image_service(
    images: ImageStore = Depends(get_image_store),
    tags: TagStore = Depends(get_tag_store),
    storage: StorageBackend = Depends(get_storage_service),
    cache: CacheService = Depends(get_cache_service),
    validator: ValidationService = Depends(get_validation_service),
    events: EventPublisher = Depends(get_event_publisher),
) -> ImageService:
    """Get image service."""
    return ImageService(
        images,
        tags,
        storage,
        cache=cache,
        validator=validator,
        events=events,
    )


async def get_tag_service(
    tags: TagStore = Depends(get_tag_store),
    cache: CacheService = Depends(get_cache_service),
) -> TagService:
    """Get tag service."""
    return TagService(tags, cache)
