"""Factories for creating test data."""
from __future__ import annotations

import itertools
from datetime import datetime, timedelta
from typing import Any

from image_catalog.core.timeutil import utcnow
from image_catalog.models.database import Image, Tag
from image_catalog.models.schemas import ImageCreate

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 56
JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 60
WEBP_BYTES = b"RIFF\x24\x00\x00\x00WEBPVP8 " + b"\x00" * 48

_sequence = itertools.count(1)

BASE_TIME = datetime(2024, 1, 1, 12, 0, 0)


class ImageFactory:
    """Factory for creating Image instances."""

    @staticmethod
    def create(**kwargs: Any) -> Image:
        """Create an Image with default values."""
        n = next(_sequence)
        now = utcnow()
        defaults = {
            "filename": f"test_image_{n}.png",
            "original_filename": f"test_image_{n}.png",
            "content_type": "image/png",
            "file_size": 2048,
            "storage_path": f"ab/cd/test_image_{n}.png",
            "width": 640,
            "height": 480,
            "extra_metadata": "{}",
            "uploaded_at": now,
            "created_at": now,
            "updated_at": now,
        }
        defaults.update(kwargs)
        return Image(**defaults)

    @staticmethod
    def uploaded(minutes: int, **kwargs: Any) -> Image:
        """Image uploaded ``minutes`` after a fixed base time."""
        return ImageFactory.create(uploaded_at=BASE_TIME + timedelta(minutes=minutes), **kwargs)


class TagFactory:
    """Factory for creating Tag instances."""

    @staticmethod
    def create(**kwargs: Any) -> Tag:
        """Create a Tag with default values."""
        defaults = {
            "name": f"test-tag-{next(_sequence)}",
            "is_predefined": False,
            "is_active": True,
            "display_order": 0,
            "created_at": utcnow(),
        }
        defaults.update(kwargs)
        return Tag(**defaults)


def upload_request(**kwargs: Any) -> ImageCreate:
    """A valid upload request for :data:`PNG_BYTES`."""
    defaults = {
        "original_filename": "sunset.png",
        "content_type": "image/png",
        "file_size": len(PNG_BYTES),
        "width": 640,
        "height": 480,
        "extra_metadata": "{}",
        "tags": [],
    }
    defaults.update(kwargs)
    return ImageCreate(**defaults)
