"""Validation rules for image mutations."""
import json
import logging
import unicodedata
from typing import Optional, Sequence

from image_catalog.core.constants import (
    MAX_FILE_SIZE,
    MAX_FILENAME_LENGTH,
    MAX_IMAGE_DIMENSION,
    MIN_IMAGE_DIMENSION,
    MAX_TAGS_PER_IMAGE,
    SUPPORTED_CONTENT_TYPES,
)
from image_catalog.core.exceptions import DuplicateException, ValidationException
from image_catalog.core.tags import normalize_tag_names
from image_catalog.models.schemas import ImageCreate, ImageUpdate

logger = logging.getLogger(__name__)


class ValidationService:
    """
    Rule-based validation collaborator.

    Each ``validate_*`` method returns None when the input is acceptable and
    raises ValidationException (or DuplicateException for repeated tag
    names) otherwise. Subclasses can tighten policy, e.g. refuse deletions.
    """

    def validate_upload(self, request: ImageCreate) -> None:
        """
        Check an upload request before anything is stored.

        Raises:
            ValidationException: A field is out of bounds
            DuplicateException: Two tag names are equal after normalization
        """
        self.validate_filename(request.original_filename)
        self.validate_content_type(request.content_type)
        self.validate_file_size(request.file_size)
        self.validate_dimensions(request.width, request.height)
        self.validate_metadata(request.extra_metadata)
        normalize_tag_names(request.tags)

    def validate_update(self, image_id: int, request: ImageUpdate) -> None:
        if image_id < 1:
            raise ValidationException(f"invalid image id {image_id}", field="id")
        normalize_tag_names(request.tags)

    def validate_deletion(self, image_id: int) -> None:
        """Deletion policy hook. Every existing image may be deleted."""
        if image_id < 1:
            raise ValidationException(f"invalid image id {image_id}", field="id")

    def validate_entity(self, image, tags: Sequence) -> None:
        """
        Re-check a fully assembled image and its tag set before persisting.

        Raises:
            ValidationException: Too many tags or an invalid stored field
            DuplicateException: The same tag name appears twice
        """
        if len(tags) > MAX_TAGS_PER_IMAGE:
            raise ValidationException(
                f"too many tags (max {MAX_TAGS_PER_IMAGE})", field="tags"
            )
        names = [tag.name for tag in tags]
        if len(set(names)) != len(names):
            duplicate = next(name for name in names if names.count(name) > 1)
            raise DuplicateException("Tag", duplicate)

        self.validate_content_type(image.content_type)
        self.validate_file_size(image.file_size)
        self.validate_dimensions(image.width, image.height)
        self.validate_metadata(image.extra_metadata)

    # Field rules

    @staticmethod
    def validate_filename(filename: str) -> None:
        if not filename or not filename.strip():
            raise ValidationException("filename cannot be empty", field="original_filename")
        if len(filename) > MAX_FILENAME_LENGTH:
            raise ValidationException(
                f"filename too long (max {MAX_FILENAME_LENGTH} characters)",
                field="original_filename"
            )
        if any(unicodedata.category(ch) in ("Cc", "Cs") for ch in filename):
            raise ValidationException(
                "filename contains control or invalid characters",
                field="original_filename"
            )

    @staticmethod
    def validate_content_type(content_type: str) -> None:
        if content_type not in SUPPORTED_CONTENT_TYPES:
            raise ValidationException(
                f"unsupported content type: {content_type}", field="content_type"
            )

    @staticmethod
    def validate_file_size(file_size: int) -> None:
        if file_size <= 0:
            raise ValidationException("file size must be greater than 0", field="file_size")
        if file_size > MAX_FILE_SIZE:
            raise ValidationException(
                f"file size too large: {file_size} bytes, maximum allowed: {MAX_FILE_SIZE} bytes",
                field="file_size"
            )

    @staticmethod
    def validate_dimensions(width: Optional[int], height: Optional[int]) -> None:
        for field, value in (("width", width), ("height", height)):
            if value is None:
                continue
            if not MIN_IMAGE_DIMENSION <= value <= MAX_IMAGE_DIMENSION:
                raise ValidationException(
                    f"image {field} must be between {MIN_IMAGE_DIMENSION} and {MAX_IMAGE_DIMENSION}",
                    field=field
                )

    @staticmethod
    def validate_metadata(metadata: Optional[str]) -> None:
        """The metadata blob is opaque, it only has to parse as JSON."""
        if metadata is None:
            return
        try:
            json.loads(metadata)
        except (TypeError, ValueError) as e:
            raise ValidationException(f"metadata is not valid JSON: {e}", field="metadata") from e
