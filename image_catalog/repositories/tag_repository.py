"""Tag repository."""
import logging
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import delete, desc, distinct, func, insert, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from image_catalog.core.constants import PredefinedTag
from image_catalog.core.exceptions import DatabaseException
from image_catalog.core.timeutil import utcnow
from image_catalog.models.database import Image, ImageTag, Tag
from image_catalog.models.schemas import Pagination
from image_catalog.repositories.base import BaseRepository
from image_catalog.repositories.interfaces import TagStore

logger = logging.getLogger(__name__)


class TagRepository(BaseRepository[Tag], TagStore):
    """Repository for tag operations."""

    def __init__(self, db: AsyncSession):
        super().__init__(Tag, db)

    def _identity(self, entity: Tag) -> str:
        return entity.name

    async def get_by_name(self, name: str) -> Optional[Tag]:
        """
        Get tag by name.

        Args:
            name: Normalized tag name

        Returns:
            Tag or None
        """
        result = await self._execute(
            select(Tag).where(Tag.name == name)
        )
        return result.scalar_one_or_none()

    async def list(self, pagination: Pagination) -> List[Tag]:
        result = await self._execute(
            select(Tag)
            .order_by(Tag.name)
            .limit(pagination.limit)
            .offset(pagination.offset)
        )
        return list(result.scalars().all())

    async def search(self, query: str, pagination: Pagination) -> List[Tag]:
        """
        Find tags whose name contains ``query`` (case-insensitive).

        ``%`` and ``_`` in the query are matched literally.
        """
        result = await self._execute(
            select(Tag)
            .where(Tag.name.contains(query.strip().lower(), autoescape=True))
            .order_by(Tag.name)
            .limit(pagination.limit)
            .offset(pagination.offset)
        )
        return list(result.scalars().all())

    async def get_popular(self, limit: int) -> List[Tuple[Tag, int]]:
        """
        Get the most used active tags.

        Tags without images are included with a count of zero.

        Returns:
            ``(tag, image_count)`` pairs ordered by count desc, then name
        """
        image_count = func.count(ImageTag.image_id).label("image_count")
        result = await self._execute(
            select(Tag, image_count)
            .outerjoin(ImageTag, ImageTag.tag_id == Tag.id)
            .where(Tag.is_active.is_(True))
            .group_by(Tag.id)
            .order_by(desc("image_count"), Tag.name)
            .limit(limit)
        )
        return [(tag, count) for tag, count in result.all()]

    async def get_predefined(self) -> List[Tag]:
        result = await self._execute(
            select(Tag)
            .where(Tag.is_predefined.is_(True), Tag.is_active.is_(True))
            .order_by(Tag.display_order, Tag.name)
        )
        return list(result.scalars().all())

    async def upsert_predefined(self, definition: PredefinedTag) -> Tag:
        """
        Insert a curated tag, or bring an existing tag of the same name in line.

        An ad hoc tag that already carries a curated name is promoted rather
        than duplicated.
        """
        tag = await self.get_by_name(definition.name)
        if tag is None:
            return await self.create(
                Tag(
                    name=definition.name,
                    description=definition.description,
                    category=definition.category,
                    display_order=definition.display_order,
                    is_predefined=True,
                    is_active=True,
                )
            )

        tag.description = definition.description
        tag.category = definition.category
        tag.display_order = definition.display_order
        tag.is_predefined = True
        tag.is_active = True
        return await self.update(tag)

    # Image Tag Operations

    async def set_image_tags(self, image_id: int, tag_ids: Sequence[int]) -> None:
        """
        Replace the tag set of an image.

        Delete and re-insert run in one SAVEPOINT: either the whole new set
        is in place or the previous one is untouched.
        """
        unique_ids = list(dict.fromkeys(tag_ids))
        now = utcnow()
        try:
            async with self.db.begin_nested():
                await self.db.execute(
                    delete(ImageTag).where(ImageTag.image_id == image_id)
                )
                if unique_ids:
                    await self.db.execute(
                        insert(ImageTag),
                        [
                            {"image_id": image_id, "tag_id": tag_id, "created_at": now}
                            for tag_id in unique_ids
                        ],
                    )
        except SQLAlchemyError as e:
            logger.error(f"Failed to set tags {unique_ids} on image {image_id}: {e}")
            raise DatabaseException(str(e)) from e

    async def add_to_image(self, image_id: int, tag_id: int) -> bool:
        """
        Add tag to image.

        Returns:
            True if the association was created, False if it already existed
        """
        # Check if association already exists
        result = await self._execute(
            select(func.count())
            .select_from(ImageTag)
            .where(ImageTag.image_id == image_id, ImageTag.tag_id == tag_id)
        )
        if result.scalar_one() > 0:
            return False

        await self._execute(
            insert(ImageTag).values(image_id=image_id, tag_id=tag_id, created_at=utcnow())
        )
        return True

    async def remove_from_image(self, image_id: int, tag_id: int) -> bool:
        """
        Remove tag from image.

        Returns:
            True if removed, False if not found
        """
        result = await self._execute(
            delete(ImageTag).where(
                ImageTag.image_id == image_id,
                ImageTag.tag_id == tag_id
            )
        )
        return result.rowcount > 0

    async def get_image_tags(self, image_id: int) -> List[Tag]:
        """
        Get all tags for an image.

        Returns:
            List of tags ordered by name
        """
        result = await self._execute(
            select(Tag)
            .join(ImageTag, ImageTag.tag_id == Tag.id)
            .where(ImageTag.image_id == image_id)
            .order_by(Tag.name)
        )
        return list(result.scalars().all())

    async def get_tags_for_images(self, image_ids: Sequence[int]) -> List[Tuple[int, Tag]]:
        """
        Load the tags of a batch of images in one query.

        Args:
            image_ids: Images of the current page

        Returns:
            ``(image_id, tag)`` rows ordered by image id, then tag name
        """
        if not image_ids:
            return []

        result = await self._execute(
            select(ImageTag.image_id, Tag)
            .join(Tag, Tag.id == ImageTag.tag_id)
            .where(ImageTag.image_id.in_(list(image_ids)))
            .order_by(ImageTag.image_id, Tag.name)
        )
        return [(image_id, tag) for image_id, tag in result.all()]

    async def count_image_tags(self, image_id: int) -> int:
        result = await self._execute(
            select(func.count()).select_from(ImageTag).where(ImageTag.image_id == image_id)
        )
        return result.scalar_one()

    async def count_tag_images(self, tag_id: int) -> int:
        result = await self._execute(
            select(func.count()).select_from(ImageTag).where(ImageTag.tag_id == tag_id)
        )
        return result.scalar_one()

    async def get_tag_images(self, tag_id: int, pagination: Pagination) -> List[Image]:
        """
        Get images carrying a tag.

        Returns:
            One page of images, newest first, no tags loaded
        """
        result = await self._execute(
            select(Image)
            .join(ImageTag, ImageTag.image_id == Image.id)
            .where(ImageTag.tag_id == tag_id)
            .order_by(Image.uploaded_at.desc(), Image.id.asc())
            .limit(pagination.limit)
            .offset(pagination.offset)
        )
        return list(result.scalars().all())

    async def get_with_image_count(self, pagination: Pagination) -> List[Tuple[Tag, int]]:
        image_count = func.count(ImageTag.image_id).label("image_count")
        result = await self._execute(
            select(Tag, image_count)
            .outerjoin(ImageTag, ImageTag.tag_id == Tag.id)
            .group_by(Tag.id)
            .order_by(Tag.name)
            .limit(pagination.limit)
            .offset(pagination.offset)
        )
        return [(tag, count) for tag, count in result.all()]

    async def get_unused(self) -> List[Tag]:
        result = await self._execute(
            select(Tag)
            .outerjoin(ImageTag, ImageTag.tag_id == Tag.id)
            .where(ImageTag.tag_id.is_(None))
            .order_by(Tag.name)
        )
        return list(result.scalars().all())

    async def get_usage_totals(self) -> Tuple[int, int]:
        result = await self._execute(
            select(func.count(), func.count(distinct(ImageTag.image_id))).select_from(ImageTag)
        )
        associations, tagged_images = result.one()
        return associations, tagged_images
