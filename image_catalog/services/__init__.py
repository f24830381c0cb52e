"""Business logic services."""
from .cache_service import CacheService
from .events import EventPublisher, LoggingEventPublisher
from .image_service import ImageService
from .query_engine import QueryEngine
from .storage_service import LocalStorageService, StorageBackend
from .tag_service import TagService
from .validation_service import ValidationService

__all__ = [
    "CacheService",
    "EventPublisher",
    "LoggingEventPublisher",
    "ImageService",
    "QueryEngine",
    "LocalStorageService",
    "StorageBackend",
    "TagService",
    "ValidationService",
]
