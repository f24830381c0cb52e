"""Common Pydantic schemas used across the application."""
import math
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from image_catalog.core.constants import (
    DEFAULT_PAGE_SIZE,
    DEFAULT_RECENT_LIMIT,
    DEFAULT_SORT_FIELD,
    DEFAULT_SORT_ORDER,
    MAX_PAGE_SIZE,
    MAX_RECENT_LIMIT,
    SORT_FIELDS,
    SORT_ORDERS,
)


def calculate_total_pages(total_count: int, page_size: int) -> int:
    """ceil(total_count / page_size), or 0 when page_size is not positive."""
    if page_size <= 0:
        return 0
    return math.ceil(total_count / page_size)


class Pagination(BaseModel):
    """
    Store-level limit/offset window.

    Out-of-range values are clamped instead of rejected: a limit outside
    1..MAX_PAGE_SIZE falls back to the default page size, a negative offset
    becomes 0.
    """

    limit: int = DEFAULT_PAGE_SIZE
    offset: int = 0

    @field_validator("limit")
    @classmethod
    def clamp_limit(cls, v: int) -> int:
        if v < 1 or v > MAX_PAGE_SIZE:
            return DEFAULT_PAGE_SIZE
        return v

    @field_validator("offset")
    @classmethod
    def clamp_offset(cls, v: int) -> int:
        return max(v, 0)


class PaginationParams(BaseModel):
    """Pagination parameters."""

    page: int = Field(default=1, ge=1, description="Page number")
    page_size: int = Field(
        default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE, description="Items per page"
    )

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size

    def to_pagination(self) -> Pagination:
        return Pagination(limit=self.page_size, offset=self.offset)


class SortParams(BaseModel):
    """
    Whitelisted sort specification.

    Unknown fields or directions are replaced by the default
    (``uploaded_at desc``) rather than rejected, so the value can be
    interpolated into ORDER BY safely.
    """

    field: str = DEFAULT_SORT_FIELD
    order: str = DEFAULT_SORT_ORDER

    @field_validator("field", mode="before")
    @classmethod
    def whitelist_field(cls, v: Optional[str]) -> str:
        if isinstance(v, str) and v.strip().lower() in SORT_FIELDS:
            return v.strip().lower()
        return DEFAULT_SORT_FIELD

    @field_validator("order", mode="before")
    @classmethod
    def whitelist_order(cls, v: Optional[str]) -> str:
        if isinstance(v, str) and v.strip().lower() in SORT_ORDERS:
            return v.strip().lower()
        return DEFAULT_SORT_ORDER

    @property
    def descending(self) -> bool:
        return self.order == "desc"


def clamp_recent_limit(limit: int) -> int:
    """Limit for recent-upload queries; out-of-range values fall back to the default."""
    if limit <= 0 or limit > MAX_RECENT_LIMIT:
        return DEFAULT_RECENT_LIMIT
    return limit
