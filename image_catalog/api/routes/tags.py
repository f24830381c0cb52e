"""Tag API routes."""
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status

from image_catalog.api.dependencies import get_image_service, get_tag_service
from image_catalog.core.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from image_catalog.models.schemas import (
    ListImagesResponse,
    PaginationParams,
    PopularTagResponse,
    PredefinedTagsResponse,
    TagListResponse,
    TagResponse,
    TagStats,
)
from image_catalog.services import ImageService, TagService

router = APIRouter(prefix="/tags")


@router.get("", response_model=TagListResponse)
async def list_tags(
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    q: Optional[str] = Query(default=None, description="Substring to search for"),
    tag_service: TagService = Depends(get_tag_service),
):
    """List tags by name, optionally filtered by a substring."""
    pagination = PaginationParams(page=page, page_size=page_size).to_pagination()
    if q:
        tags = await tag_service.search_tags(q, pagination)
    else:
        tags = await tag_service.list_tags(pagination)

    return TagListResponse(
        tags=[TagResponse.model_validate(tag) for tag in tags],
        total=await tag_service.count_tags(),
        page=page,
        page_size=page_size,
    )


@router.get("/popular", response_model=List[PopularTagResponse])
async def get_popular_tags(
    limit: int = Query(default=20, ge=1, le=MAX_PAGE_SIZE),
    tag_service: TagService = Depends(get_tag_service),
):
    """Most used tags with their image counts."""
    return await tag_service.get_popular_tags(limit)


@router.get("/predefined", response_model=PredefinedTagsResponse)
async def get_predefined_tags(
    tag_service: TagService = Depends(get_tag_service),
):
    """Curated tags, flat and grouped by category."""
    grouped = await tag_service.get_predefined_by_category()
    tags = await tag_service.get_predefined_tags()
    return PredefinedTagsResponse(
        tags=[TagResponse.model_validate(tag) for tag in tags],
        tags_by_category={
            category: [TagResponse.model_validate(tag) for tag in members]
            for category, members in grouped.items()
        },
        total=len(tags),
    )


@router.get("/stats", response_model=TagStats)
async def get_tag_stats(
    tag_service: TagService = Depends(get_tag_service),
):
    """Tag usage figures, most used and unused tags."""
    return await tag_service.get_tag_stats()


@router.get("/usage", response_model=List[PopularTagResponse])
async def list_tag_usage(
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    tag_service: TagService = Depends(get_tag_service),
):
    """Every tag by name with its image count."""
    pagination = PaginationParams(page=page, page_size=page_size).to_pagination()
    return await tag_service.list_tags_with_counts(pagination)


@router.get("/{tag_id}", response_model=TagResponse)
async def get_tag(
    tag_id: int,
    tag_service: TagService = Depends(get_tag_service),
):
    return await tag_service.get_tag(tag_id)


@router.get("/{tag_id}/images", response_model=ListImagesResponse)
async def list_tag_images(
    tag_id: int,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    image_service: ImageService = Depends(get_image_service),
):
    """Images carrying the tag, newest first."""
    return await image_service.list_tag_images(tag_id, page, page_size)


@router.delete("/{tag_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_tag(
    tag_id: int,
    tag_service: TagService = Depends(get_tag_service),
):
    """Delete a tag and detach it from every image."""
    await tag_service.delete_tag(tag_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
