"""Image Pydantic schemas."""
from datetime import datetime
from typing import List, Optional, Sequence

from pydantic import BaseModel, Field, computed_field, field_validator, model_validator

from image_catalog.core.constants import (
    DEFAULT_PAGE_SIZE,
    DEFAULT_SORT_FIELD,
    DEFAULT_SORT_ORDER,
    MAX_PAGE_SIZE,
)
from image_catalog.core.tags import clean_tag_filter
from image_catalog.core.timeutil import naive_utc

from .common import Pagination, SortParams, calculate_total_pages
from .tag import TagResponse


class ImageBase(BaseModel):
    """Base image schema with common fields."""

    original_filename: str = Field(..., min_length=1, max_length=255, description="Original filename")
    content_type: str = Field(..., max_length=50, description="MIME type")
    file_size: int = Field(..., description="File size in bytes")
    width: Optional[int] = Field(default=None, description="Image width in pixels")
    height: Optional[int] = Field(default=None, description="Image height in pixels")
    extra_metadata: str = Field(default="{}", description="Opaque JSON document")


class ImageCreate(ImageBase):
    """Upload request accompanying the binary payload."""

    tags: List[str] = Field(default_factory=list, description="Requested tag names")


class ImageUpdate(BaseModel):
    """Schema for updating an image. The tag set is replaced as a whole."""

    tags: List[str] = Field(..., description="New tag names")


class ImageResponse(ImageBase):
    """Schema for image responses."""

    id: int
    filename: str
    storage_path: str
    thumbnail_path: Optional[str] = None
    uploaded_at: datetime
    created_at: datetime
    updated_at: datetime
    tags: List[TagResponse] = Field(default_factory=list, description="Associated tags by name")

    class Config:
        from_attributes = True

    @classmethod
    def from_model(cls, image, tags: Sequence = ()) -> "ImageResponse":
        """Build from an ORM row and its already-loaded tags."""
        return cls(
            id=image.id,
            filename=image.filename,
            original_filename=image.original_filename,
            content_type=image.content_type,
            file_size=image.file_size,
            storage_path=image.storage_path,
            thumbnail_path=image.thumbnail_path,
            width=image.width,
            height=image.height,
            extra_metadata=image.extra_metadata or "{}",
            uploaded_at=image.uploaded_at,
            created_at=image.created_at,
            updated_at=image.updated_at,
            tags=[
                TagResponse.model_validate(tag)
                for tag in sorted(tags, key=lambda t: t.name)
            ],
        )


def check_ranges(
    min_size: Optional[int],
    max_size: Optional[int],
    start: Optional[datetime],
    end: Optional[datetime],
):
    if min_size is not None and max_size is not None and min_size > max_size:
        raise ValueError("min_size must not exceed max_size")
    if start is not None and end is not None and start > end:
        raise ValueError("uploaded_after must not be later than uploaded_before")


def normalize_content_types(values: Optional[Sequence[str]]) -> List[str]:
    """Lowercased, de-duplicated and sorted MIME types."""
    return sorted({value.strip().lower() for value in values or [] if value and value.strip()})


def normalize_filename_term(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip() or None


class SearchFilters(BaseModel):
    """
    Attribute filters over image rows.

    Every given criterion must hold. Sizes and dates are inclusive bounds,
    ``filename`` is a case-insensitive substring of either the stored or the
    original filename. ``tags`` applies the same set-membership rule as a
    tag listing.
    """

    content_types: List[str] = Field(default_factory=list, description="Accepted MIME types")
    min_size: Optional[int] = Field(default=None, ge=0, description="Smallest file size in bytes")
    max_size: Optional[int] = Field(default=None, ge=0, description="Largest file size in bytes")
    uploaded_after: Optional[datetime] = Field(default=None, description="Earliest upload time")
    uploaded_before: Optional[datetime] = Field(default=None, description="Latest upload time")
    filename: Optional[str] = Field(default=None, max_length=255, description="Filename substring")
    tags: List[str] = Field(default_factory=list, description="Tag filter")
    match_all: bool = False

    @field_validator("content_types", mode="before")
    @classmethod
    def clean_content_types(cls, v):
        return normalize_content_types(v)

    @field_validator("uploaded_after", "uploaded_before")
    @classmethod
    def to_naive_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return naive_utc(v) if v is not None else None

    @field_validator("filename")
    @classmethod
    def clean_filename(cls, v: Optional[str]) -> Optional[str]:
        return normalize_filename_term(v)

    @field_validator("tags", mode="before")
    @classmethod
    def clean_tags(cls, v):
        return clean_tag_filter(v)

    @model_validator(mode="after")
    def validate_ranges(self) -> "SearchFilters":
        check_ranges(self.min_size, self.max_size, self.uploaded_after, self.uploaded_before)
        return self

    @property
    def has_attribute_filters(self) -> bool:
        """True when anything besides tags narrows the result."""
        return bool(
            self.content_types
            or self.min_size is not None
            or self.max_size is not None
            or self.uploaded_after is not None
            or self.uploaded_before is not None
            or self.filename
        )


class ListImagesRequest(BaseModel):
    """Filter, sort and page selection for an image listing."""

    page: int = Field(default=1, ge=1, description="Page number")
    page_size: int = Field(
        default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE, description="Items per page"
    )
    tag: Optional[str] = Field(default=None, description="Single tag filter")
    tags: List[str] = Field(default_factory=list, description="Tag filter")
    match_all: bool = Field(default=False, description="Require every tag instead of any")
    sort_by: str = Field(default=DEFAULT_SORT_FIELD, description="Sort field")
    sort_order: str = Field(default=DEFAULT_SORT_ORDER, description="asc or desc")
    content_types: List[str] = Field(default_factory=list, description="Accepted MIME types")
    min_size: Optional[int] = Field(default=None, ge=0, description="Smallest file size in bytes")
    max_size: Optional[int] = Field(default=None, ge=0, description="Largest file size in bytes")
    uploaded_after: Optional[datetime] = Field(default=None, description="Earliest upload time")
    uploaded_before: Optional[datetime] = Field(default=None, description="Latest upload time")
    filename: Optional[str] = Field(default=None, max_length=255, description="Filename substring")

    @model_validator(mode="after")
    def validate_ranges(self) -> "ListImagesRequest":
        check_ranges(
            self.min_size,
            self.max_size,
            naive_utc(self.uploaded_after) if self.uploaded_after else None,
            naive_utc(self.uploaded_before) if self.uploaded_before else None,
        )
        return self

    def effective_tags(self) -> List[str]:
        """``tags`` normalized, falling back to the single ``tag`` when none remain."""
        names = clean_tag_filter(self.tags)
        if not names and self.tag:
            names = clean_tag_filter([self.tag])
        return names

    def search_filters(self) -> SearchFilters:
        return SearchFilters(
            content_types=self.content_types,
            min_size=self.min_size,
            max_size=self.max_size,
            uploaded_after=self.uploaded_after,
            uploaded_before=self.uploaded_before,
            filename=self.filename,
            tags=self.effective_tags(),
            match_all=self.match_all,
        )

    def pagination(self) -> Pagination:
        return Pagination(limit=self.page_size, offset=(self.page - 1) * self.page_size)

    def sort(self) -> SortParams:
        return SortParams(field=self.sort_by, order=self.sort_order)


class ListImagesResponse(BaseModel):
    """Schema for paginated image list."""

    images: List[ImageResponse]
    total_count: int
    page: int
    page_size: int
    total_pages: int

    @computed_field
    @property
    def has_next_page(self) -> bool:
        return self.page < self.total_pages

    @computed_field
    @property
    def has_prev_page(self) -> bool:
        return self.page > 1

    @classmethod
    def build(
        cls,
        images: List[ImageResponse],
        total_count: int,
        page: int,
        page_size: int,
    ) -> "ListImagesResponse":
        return cls(
            images=images,
            total_count=total_count,
            page=page,
            page_size=page_size,
            total_pages=calculate_total_pages(total_count, page_size),
        )


class ImageStats(BaseModel):
    """Aggregate figures over the whole catalog."""

    total_images: int = 0
    content_types: int = 0
    total_size: int = 0
    average_size: float = 0.0
    max_size: int = 0
    min_size: int = 0


class ImageURLResponse(BaseModel):
    """Time-limited URL for an image file."""

    url: str
    expires_in: int
