"""Tag service for resolving and managing tags."""
import logging
from typing import Dict, Iterable, List, Optional

from image_catalog.core.constants import MOST_USED_TAGS, PREDEFINED_TAGS, TAG_CREATE_ATTEMPTS
from image_catalog.core.exceptions import (
    DatabaseException,
    DuplicateException,
    NotFoundException,
)
from image_catalog.core.tags import normalize_tag_names, validate_tag_name
from image_catalog.models.database import Tag
from image_catalog.models.schemas import (
    Pagination,
    PopularTagResponse,
    TagResponse,
    TagStats,
)
from image_catalog.repositories.interfaces import TagStore
from image_catalog.services.cache_service import CacheService

logger = logging.getLogger(__name__)


def _with_counts(rows) -> List[PopularTagResponse]:
    return [
        PopularTagResponse(**TagResponse.model_validate(tag).model_dump(), image_count=count)
        for tag, count in rows
    ]


class TagService:
    """Service for tag operations."""

    def __init__(self, tags: TagStore, cache: Optional[CacheService] = None):
        """
        Initialize tag service.

        Args:
            tags: Tag store
            cache: Cache to invalidate when tags change; a disabled cache if omitted
        """
        self.tags = tags
        self.cache = cache or CacheService(None)

    async def get_tag(self, tag_id: int) -> Tag:
        """
        Get tag by ID.

        Raises:
            NotFoundException: If tag not found
        """
        tag = await self.tags.get_by_id(tag_id)
        if tag is None:
            raise NotFoundException("Tag", tag_id)
        return tag

    async def get_tag_by_name(self, name: str) -> Tag:
        tag = await self.tags.get_by_name(validate_tag_name(name))
        if tag is None:
            raise NotFoundException("Tag", name)
        return tag

    async def get_or_create(self, name: str) -> Tag:
        """
        Get existing tag or create new one.

        Two requests may try to create the same new name at once. The
        loser's insert hits the unique index and surfaces as
        DuplicateException; the winner's row is then re-fetched.

        Args:
            name: Raw tag name

        Returns:
            Tag instance

        Raises:
            ValidationException: The name breaks the naming rules
        """
        normalized = validate_tag_name(name)

        for attempt in range(1, TAG_CREATE_ATTEMPTS + 1):
            tag = await self.tags.get_by_name(normalized)
            if tag is not None:
                return tag
            try:
                tag = await self.tags.create(Tag(name=normalized))
            except DuplicateException:
                logger.info(
                    f"Tag '{normalized}' created concurrently, re-fetching "
                    f"(attempt {attempt}/{TAG_CREATE_ATTEMPTS})"
                )
                continue
            logger.info(f"Created tag '{normalized}' (id={tag.id})")
            return tag

        raise DatabaseException(
            f"could not resolve tag '{normalized}' after {TAG_CREATE_ATTEMPTS} attempts"
        )

    async def resolve_tags(self, names: Iterable[str]) -> List[Tag]:
        """
        Turn requested names into tags, creating the missing ones.

        Raises:
            ValidationException: Bad name or too many tags
            DuplicateException: Two names are equal after normalization

        Returns:
            Tags ordered by name
        """
        resolved = [await self.get_or_create(name) for name in normalize_tag_names(names)]
        return sorted(resolved, key=lambda tag: tag.name)

    async def list_tags(self, pagination: Pagination) -> List[Tag]:
        return await self.tags.list(pagination)

    async def count_tags(self) -> int:
        return await self.tags.count()

    async def search_tags(self, query: str, pagination: Pagination) -> List[Tag]:
        if not query.strip():
            return await self.tags.list(pagination)
        return await self.tags.search(query, pagination)

    async def get_popular_tags(self, limit: int = 20) -> List[PopularTagResponse]:
        """
        Get the most used tags.

        Args:
            limit: Maximum number of tags

        Returns:
            Tags with their image counts, most used first
        """
        return _with_counts(await self.tags.get_popular(limit))

    async def list_tags_with_counts(self, pagination: Pagination) -> List[PopularTagResponse]:
        """Every tag by name with the number of images carrying it."""
        return _with_counts(await self.tags.get_with_image_count(pagination))

    async def get_tag_stats(self, top: int = MOST_USED_TAGS) -> TagStats:
        """
        Usage figures over all tags.

        The average counts only images that carry at least one tag.
        """
        associations, tagged_images = await self.tags.get_usage_totals()
        most_used = [
            tag for tag in await self.get_popular_tags(top) if tag.image_count > 0
        ]
        return TagStats(
            total_tags=await self.tags.count(),
            tagged_images=tagged_images,
            average_tags_per_image=associations / tagged_images if tagged_images else 0.0,
            most_used=most_used,
            unused=[TagResponse.model_validate(tag) for tag in await self.tags.get_unused()],
        )

    async def get_predefined_tags(self) -> List[Tag]:
        return await self.tags.get_predefined()

    async def get_predefined_by_category(self) -> Dict[str, List[Tag]]:
        """
        Get curated tags grouped by category.

        Returns:
            Dictionary mapping category to tags in display order
        """
        grouped: Dict[str, List[Tag]] = {}
        for tag in await self.tags.get_predefined():
            grouped.setdefault(tag.category or "uncategorized", []).append(tag)
        return grouped

    async def seed_predefined_tags(self) -> int:
        """
        Insert or refresh the curated tag catalog.

        Returns:
            Number of catalog entries applied
        """
        for definition in PREDEFINED_TAGS:
            await self.tags.upsert_predefined(definition)
        await self.tags.commit()

        # Descriptions are embedded in cached image payloads
        await self.cache.invalidate_all_images()
        await self.cache.invalidate_all_lists()
        logger.info(f"Seeded {len(PREDEFINED_TAGS)} predefined tags")
        return len(PREDEFINED_TAGS)

    async def delete_tag(self, tag_id: int) -> None:
        """
        Delete a tag and detach it from every image.

        Raises:
            NotFoundException: If tag not found
        """
        tag = await self.get_tag(tag_id)
        affected = await self.tags.count_tag_images(tag_id)

        await self.tags.delete(tag_id)
        await self.tags.commit()

        await self.cache.invalidate_all_lists()
        if affected:
            await self.cache.invalidate_all_images()
        logger.info(f"Deleted tag '{tag.name}' (id={tag_id}), detached from {affected} images")
