"""Image API routes."""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile, status
from fastapi.responses import StreamingResponse
from pydantic import ValidationError

from image_catalog.api.dependencies import get_image_service
from image_catalog.core.constants import (
    DEFAULT_PAGE_SIZE,
    DEFAULT_RECENT_LIMIT,
    DEFAULT_RECENT_WINDOW_HOURS,
    MAX_FILE_SIZE,
    MAX_PAGE_SIZE,
)
from image_catalog.core.exceptions import ValidationException
from image_catalog.core.timeutil import utcnow
from image_catalog.models.schemas import (
    ImageCreate,
    ImageResponse,
    ImageStats,
    ImageUpdate,
    ImageURLResponse,
    ListImagesRequest,
    ListImagesResponse,
)
from image_catalog.services import ImageService
from image_catalog.services.storage_service import DEFAULT_URL_EXPIRY

router = APIRouter(prefix="/images")


def split_values(values: Optional[List[str]]) -> List[str]:
    """Accept both repeated parameters and comma separated lists."""
    result = []
    for value in values or []:
        result.extend(part for part in value.split(",") if part.strip())
    return result


@router.get("", response_model=ListImagesResponse)
async def list_images(
    page: int = Query(default=1, ge=1, description="Page number"),
    page_size: int = Query(
        default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE, description="Items per page"
    ),
    tag: Optional[str] = Query(default=None, description="Single tag filter"),
    tags: Optional[List[str]] = Query(default=None, description="Tag filter, repeated or comma separated"),
    match_all: bool = Query(default=False, description="Require every tag instead of any"),
    sort_by: str = Query(default="uploaded_at", description="uploaded_at, filename, file_size or created_at"),
    sort_order: str = Query(default="desc", description="asc or desc"),
    content_type: Optional[List[str]] = Query(default=None, description="MIME types, repeated or comma separated"),
    min_size: Optional[int] = Query(default=None, ge=0, description="Smallest file size in bytes"),
    max_size: Optional[int] = Query(default=None, ge=0, description="Largest file size in bytes"),
    uploaded_after: Optional[datetime] = Query(default=None, description="Earliest upload time"),
    uploaded_before: Optional[datetime] = Query(default=None, description="Latest upload time"),
    filename: Optional[str] = Query(default=None, max_length=255, description="Filename substring"),
    image_service: ImageService = Depends(get_image_service),
):
    """
    List images with pagination, sorting, tag and attribute filters.

    **Parameters:**
    - **tags**: Only images carrying these tags
    - **match_all**: Every tag (true) or at least one (false)
    - **content_type, min_size, max_size**: Format and inclusive size bounds
    - **uploaded_after / uploaded_before**: Inclusive upload time window
    - **filename**: Case-insensitive substring of the stored or original name
    - **sort_by / sort_order**: Unknown values fall back to newest first

    **Returns:** One page of images with exact totals
    """
    try:
        request = ListImagesRequest(
            page=page,
            page_size=page_size,
            tag=tag,
            tags=split_values(tags),
            match_all=match_all,
            sort_by=sort_by,
            sort_order=sort_order,
            content_types=split_values(content_type),
            min_size=min_size,
            max_size=max_size,
            uploaded_after=uploaded_after,
            uploaded_before=uploaded_before,
            filename=filename,
        )
    except ValidationError as e:
        raise ValidationException(f"invalid listing: {e.errors()[0]['msg']}") from e
    return await image_service.list_images(request)


@router.get("/stats", response_model=ImageStats)
async def get_image_stats(
    image_service: ImageService = Depends(get_image_service),
):
    """Aggregate size and format figures for the whole catalog."""
    return await image_service.get_image_stats()


@router.get("/recent", response_model=List[ImageResponse])
async def get_recent_images(
    since: Optional[datetime] = Query(default=None, description="Earliest upload time, last 24 hours if omitted"),
    limit: int = Query(default=DEFAULT_RECENT_LIMIT, description="Maximum number of images"),
    image_service: ImageService = Depends(get_image_service),
):
    """Recently uploaded images, newest first."""
    if since is None:
        since = utcnow() - timedelta(hours=DEFAULT_RECENT_WINDOW_HOURS)
    return await image_service.get_recent_images(since, limit)


@router.get("/largest", response_model=ListImagesResponse)
async def get_largest_images(
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    image_service: ImageService = Depends(get_image_service),
):
    """Images by file size, largest first."""
    return await image_service.get_largest_images(page, page_size)


@router.post("", response_model=ImageResponse, status_code=status.HTTP_201_CREATED)
async def upload_image(
    file: UploadFile = File(..., description="Image file"),
    tags: Optional[List[str]] = Form(default=None, description="Tag names"),
    metadata: str = Form(default="{}", description="JSON metadata"),
    width: Optional[int] = Form(default=None),
    height: Optional[int] = Form(default=None),
    image_service: ImageService = Depends(get_image_service),
):
    """
    Upload an image with its tags.

    **Returns:** The created image
    """
    data = await file.read(MAX_FILE_SIZE + 1)
    if len(data) > MAX_FILE_SIZE:
        raise ValidationException(
            f"file size exceeds maximum of {MAX_FILE_SIZE} bytes", field="file_size"
        )
    try:
        request = ImageCreate(
            original_filename=file.filename or "",
            content_type=file.content_type or "",
            file_size=len(data),
            width=width,
            height=height,
            extra_metadata=metadata,
            tags=split_values(tags),
        )
    except ValidationError as e:
        raise ValidationException(f"invalid upload: {e.errors()[0]['msg']}") from e

    return await image_service.create_image(request, data)


@router.get("/{image_id}", response_model=ImageResponse)
async def get_image(
    image_id: int,
    image_service: ImageService = Depends(get_image_service),
):
    """Get image metadata with its tags."""
    return await image_service.get_image(image_id)


@router.get("/{image_id}/url", response_model=ImageURLResponse)
async def get_image_url(
    image_id: int,
    expiry: int = Query(default=DEFAULT_URL_EXPIRY, description="Lifetime in seconds"),
    image_service: ImageService = Depends(get_image_service),
):
    """Get a download URL for the image file."""
    return await image_service.generate_image_url(image_id, expiry)


@router.get("/{image_id}/file")
async def download_image(
    image_id: int,
    image_service: ImageService = Depends(get_image_service),
):
    """Stream the stored image file."""
    stream, image = await image_service.download_image(image_id)

    def iterate():
        with stream:
            yield from iter(lambda: stream.read(65536), b"")

    return StreamingResponse(
        iterate(),
        media_type=image.content_type,
        headers={"Content-Disposition": f'inline; filename="{image.filename}"'},
    )


@router.patch("/{image_id}", response_model=ImageResponse)
async def update_image(
    image_id: int,
    update: ImageUpdate,
    image_service: ImageService = Depends(get_image_service),
):
    """Replace the tag set of an image."""
    return await image_service.update_image(image_id, update)


@router.delete("/{image_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_image(
    image_id: int,
    image_service: ImageService = Depends(get_image_service),
):
    """Delete an image, its tag associations and its file."""
    await image_service.delete_image(image_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
