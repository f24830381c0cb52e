"""Pydantic schemas for API validation."""
from .common import (
    Pagination,
    PaginationParams,
    SortParams,
    calculate_total_pages,
    clamp_recent_limit,
)
from .tag import (
    TagBase,
    TagResponse,
    PopularTagResponse,
    TagStats,
    TagListResponse,
    PredefinedTagsResponse,
)
from .image import (
    ImageBase,
    ImageCreate,
    ImageUpdate,
    ImageResponse,
    SearchFilters,
    ListImagesRequest,
    ListImagesResponse,
    ImageStats,
    ImageURLResponse,
)

__all__ = [
    # Common
    "Pagination",
    "PaginationParams",
    "SortParams",
    "calculate_total_pages",
    "clamp_recent_limit",
    # Tag
    "TagBase",
    "TagResponse",
    "PopularTagResponse",
    "TagStats",
    "TagListResponse",
    "PredefinedTagsResponse",
    # Image
    "ImageBase",
    "ImageCreate",
    "ImageUpdate",
    "ImageResponse",
    "SearchFilters",
    "ListImagesRequest",
    "ListImagesResponse",
    "ImageStats",
    "ImageURLResponse",
]
