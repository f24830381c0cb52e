"""Data access layer - repositories."""
from .interfaces import ImageStore, TagStore, UnitOfWork
from .base import BaseRepository
from .image_repository import ImageRepository
from .tag_repository import TagRepository
from .memory import InMemoryCatalog, InMemoryImageStore, InMemoryTagStore

__all__ = [
    "ImageStore",
    "TagStore",
    "UnitOfWork",
    "BaseRepository",
    "ImageRepository",
    "TagRepository",
    "InMemoryCatalog",
    "InMemoryImageStore",
    "InMemoryTagStore",
]
