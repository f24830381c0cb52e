"""Image repository."""
from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy import delete, distinct, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from image_catalog.core.timeutil import utcnow
from image_catalog.models.database import Image, ImageTag, Tag
from image_catalog.models.schemas import (
    ImageStats,
    Pagination,
    SearchFilters,
    SortParams,
    clamp_recent_limit,
)
from image_catalog.repositories.base import BaseRepository
from image_catalog.repositories.interfaces import ImageStore


def tag_filter_subquery(names: Sequence[str], match_all: bool):
    """
    Ids of images matching a tag-name set.

    match_all: the image carries every name, i.e. grouped per image the
    number of distinct matched names equals the number requested.
    Otherwise the image carries at least one of them.

    ``names`` must already be normalized and free of repeats.
    """
    stmt = (
        select(ImageTag.image_id)
        .join(Tag, Tag.id == ImageTag.tag_id)
        .where(Tag.name.in_(list(names)))
    )
    if match_all:
        stmt = stmt.group_by(ImageTag.image_id).having(
            func.count(distinct(Tag.name)) == len(names)
        )
    return stmt


def like_pattern(term: str) -> str:
    """``%term%`` with LIKE wildcards in ``term`` escaped by backslash."""
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def search_conditions(filters: SearchFilters) -> list:
    """WHERE clauses for every criterion set in ``filters``."""
    conditions = []
    if filters.content_types:
        conditions.append(Image.content_type.in_(filters.content_types))
    if filters.min_size is not None:
        conditions.append(Image.file_size >= filters.min_size)
    if filters.max_size is not None:
        conditions.append(Image.file_size <= filters.max_size)
    if filters.uploaded_after is not None:
        conditions.append(Image.uploaded_at >= filters.uploaded_after)
    if filters.uploaded_before is not None:
        conditions.append(Image.uploaded_at <= filters.uploaded_before)
    if filters.filename:
        pattern = like_pattern(filters.filename)
        conditions.append(
            or_(
                Image.filename.ilike(pattern, escape="\\"),
                Image.original_filename.ilike(pattern, escape="\\"),
            )
        )
    if filters.tags:
        conditions.append(Image.id.in_(tag_filter_subquery(filters.tags, filters.match_all)))
    return conditions


class ImageRepository(BaseRepository[Image], ImageStore):
    """Repository for image operations."""

    def __init__(self, db: AsyncSession):
        super().__init__(Image, db)

    def _identity(self, entity: Image) -> str:
        return entity.filename

    @staticmethod
    def _ordering(sort: SortParams):
        """ORDER BY clauses for a whitelisted sort, with id as tie-break."""
        column = getattr(Image, sort.field)
        primary = column.desc() if sort.descending else column.asc()
        return [primary, Image.id.asc()]

    async def get_by_filename(self, filename: str) -> Optional[Image]:
        result = await self._execute(
            select(Image).where(Image.filename == filename)
        )
        return result.scalar_one_or_none()

    async def get_by_storage_path(self, storage_path: str) -> Optional[Image]:
        result = await self._execute(
            select(Image).where(Image.storage_path == storage_path)
        )
        return result.scalar_one_or_none()

    async def update_thumbnail(self, id: int, thumbnail_path: str) -> bool:
        """
        Set the thumbnail reference of an image.

        Returns:
            True if updated, False if the image does not exist
        """
        result = await self._execute(
            update(Image)
            .where(Image.id == id)
            .values(thumbnail_path=thumbnail_path, updated_at=utcnow())
        )
        return result.rowcount > 0

    async def list(self, pagination: Pagination, sort: SortParams) -> List[Image]:
        """
        Get one page of images.

        Args:
            pagination: Limit/offset window
            sort: Whitelisted sort field and direction

        Returns:
            List of images, no tags loaded
        """
        result = await self._execute(
            select(Image)
            .order_by(*self._ordering(sort))
            .limit(pagination.limit)
            .offset(pagination.offset)
        )
        return list(result.scalars().all())

    async def list_by_content_type(
        self, content_type: str, pagination: Pagination
    ) -> List[Image]:
        result = await self._execute(
            select(Image)
            .where(Image.content_type == content_type)
            .order_by(Image.uploaded_at.desc(), Image.id.asc())
            .limit(pagination.limit)
            .offset(pagination.offset)
        )
        return list(result.scalars().all())

    async def find_by_tags(
        self,
        names: Sequence[str],
        match_all: bool,
        pagination: Pagination,
        sort: SortParams,
    ) -> List[Image]:
        """
        Get one page of images filtered by tag names.

        Args:
            names: Normalized, de-duplicated tag names
            match_all: Require every name instead of any
            pagination: Limit/offset window
            sort: Whitelisted sort

        Returns:
            List of images, no tags loaded
        """
        if not names:
            return []

        result = await self._execute(
            select(Image)
            .where(Image.id.in_(tag_filter_subquery(names, match_all)))
            .order_by(*self._ordering(sort))
            .limit(pagination.limit)
            .offset(pagination.offset)
        )
        return list(result.scalars().all())

    async def count_by_tags(self, names: Sequence[str], match_all: bool) -> int:
        """Exact number of images matching the same predicate as :meth:`find_by_tags`."""
        if not names:
            return 0

        result = await self._execute(
            select(func.count(Image.id))
            .where(Image.id.in_(tag_filter_subquery(names, match_all)))
        )
        return result.scalar_one()

    async def search(
        self,
        filters: SearchFilters,
        pagination: Pagination,
        sort: SortParams,
    ) -> List[Image]:
        """
        Get one page of images matching attribute and tag filters.

        Args:
            filters: Criteria combined with AND; none set selects every image
            pagination: Limit/offset window
            sort: Whitelisted sort

        Returns:
            List of images, no tags loaded
        """
        result = await self._execute(
            select(Image)
            .where(*search_conditions(filters))
            .order_by(*self._ordering(sort))
            .limit(pagination.limit)
            .offset(pagination.offset)
        )
        return list(result.scalars().all())

    async def count_search(self, filters: SearchFilters) -> int:
        """Exact number of images matching the same predicate as :meth:`search`."""
        result = await self._execute(
            select(func.count(Image.id)).where(*search_conditions(filters))
        )
        return result.scalar_one()

    async def get_by_date_range(
        self, start: datetime, end: datetime, pagination: Pagination
    ) -> List[Image]:
        result = await self._execute(
            select(Image)
            .where(Image.uploaded_at >= start, Image.uploaded_at <= end)
            .order_by(Image.uploaded_at.desc(), Image.id.asc())
            .limit(pagination.limit)
            .offset(pagination.offset)
        )
        return list(result.scalars().all())

    async def get_recent(self, since: datetime, limit: int) -> List[Image]:
        result = await self._execute(
            select(Image)
            .where(Image.uploaded_at >= since)
            .order_by(Image.uploaded_at.desc(), Image.id.asc())
            .limit(clamp_recent_limit(limit))
        )
        return list(result.scalars().all())

    async def get_largest(self, pagination: Pagination) -> List[Image]:
        result = await self._execute(
            select(Image)
            .order_by(Image.file_size.desc(), Image.id.asc())
            .limit(pagination.limit)
            .offset(pagination.offset)
        )
        return list(result.scalars().all())

    async def delete_by_storage_path(self, storage_path: str) -> bool:
        """
        Delete the image row backed by a stored file.

        Returns:
            True if deleted, False if no image uses the path
        """
        result = await self._execute(
            delete(Image).where(Image.storage_path == storage_path)
        )
        return result.rowcount > 0

    async def count_by_content_type(self, content_type: str) -> int:
        result = await self._execute(
            select(func.count())
            .select_from(Image)
            .where(Image.content_type == content_type)
        )
        return result.scalar_one()

    async def get_stats(self) -> ImageStats:
        """
        Aggregate figures over all images.

        Returns:
            ImageStats, all zero for an empty catalog
        """
        result = await self._execute(
            select(
                func.count(Image.id),
                func.count(distinct(Image.content_type)),
                func.coalesce(func.sum(Image.file_size), 0),
                func.coalesce(func.avg(Image.file_size), 0),
                func.coalesce(func.max(Image.file_size), 0),
                func.coalesce(func.min(Image.file_size), 0),
            )
        )
        total, content_types, total_size, average, largest, smallest = result.one()
        return ImageStats(
            total_images=total,
            content_types=content_types,
            total_size=int(total_size),
            average_size=float(average),
            max_size=int(largest),
            min_size=int(smallest),
        )
