"""Tag Pydantic schemas."""
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class TagBase(BaseModel):
    """Base tag schema with common fields."""

    name: str = Field(..., min_length=1, max_length=100, description="Normalized tag name")
    description: Optional[str] = Field(default=None, description="Human readable description")
    color: Optional[str] = Field(default=None, description="Display color as #RRGGBB")


class TagResponse(TagBase):
    """Schema for tag responses."""

    id: int
    created_at: datetime
    is_predefined: bool = False
    is_active: bool = True
    category: Optional[str] = None
    display_order: int = 0

    class Config:
        from_attributes = True


class PopularTagResponse(TagResponse):
    """Tag together with the number of images carrying it."""

    image_count: int = 0


class TagStats(BaseModel):
    """Usage figures over the whole tag vocabulary."""

    total_tags: int = 0
    tagged_images: int = 0
    average_tags_per_image: float = 0.0
    most_used: List[PopularTagResponse] = Field(default_factory=list)
    unused: List[TagResponse] = Field(default_factory=list)


class TagListResponse(BaseModel):
    """Schema for a page of tags."""

    tags: List[TagResponse]
    total: int
    page: int
    page_size: int


class PredefinedTagsResponse(BaseModel):
    """Curated tags, flat and grouped by category."""

    tags: List[TagResponse]
    tags_by_category: Dict[str, List[TagResponse]] = Field(
        default_factory=dict,
        description="Tags grouped by category"
    )
    total: int
