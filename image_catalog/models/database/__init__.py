"""SQLAlchemy ORM models."""
from .image import Image
from .tag import Tag, ImageTag

__all__ = [
    "Image",
    "Tag",
    "ImageTag",
]
