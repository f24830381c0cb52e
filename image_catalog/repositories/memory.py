"""Dict-backed implementations of the store contracts.

Both stores share one :class:`InMemoryCatalog`, mirroring two SQL
repositories bound to the same session. Every public call is counted in
``calls`` so tests can assert whether the store was consulted at all.
"""
from collections import Counter
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from image_catalog.core.constants import PredefinedTag
from image_catalog.core.exceptions import DatabaseException, DuplicateException
from image_catalog.core.timeutil import utcnow
from image_catalog.models.database import Image, Tag
from image_catalog.models.schemas import (
    ImageStats,
    Pagination,
    SearchFilters,
    SortParams,
    clamp_recent_limit,
)
from image_catalog.repositories.interfaces import ImageStore, TagStore


class InMemoryCatalog:
    """Shared tables for the in-memory stores."""

    def __init__(self):
        self.images: Dict[int, Image] = {}
        self.tags: Dict[int, Tag] = {}
        self.image_tags: Dict[Tuple[int, int], object] = {}
        self._next_image_id = 1
        self._next_tag_id = 1

    def next_image_id(self) -> int:
        value = self._next_image_id
        self._next_image_id += 1
        return value

    def next_tag_id(self) -> int:
        value = self._next_tag_id
        self._next_tag_id += 1
        return value

    def tag_names_of(self, image_id: int) -> set:
        return {
            self.tags[tag_id].name
            for (owner, tag_id) in self.image_tags
            if owner == image_id
        }

    def has_tags(self, image_id: int, names: Sequence[str], match_all: bool) -> bool:
        wanted = set(names)
        carried = self.tag_names_of(image_id)
        if match_all:
            return wanted <= carried
        return bool(wanted & carried)


def _matches(image: Image, filters: SearchFilters, catalog: InMemoryCatalog) -> bool:
    if filters.content_types and image.content_type not in filters.content_types:
        return False
    if filters.min_size is not None and image.file_size < filters.min_size:
        return False
    if filters.max_size is not None and image.file_size > filters.max_size:
        return False
    if filters.uploaded_after is not None and image.uploaded_at < filters.uploaded_after:
        return False
    if filters.uploaded_before is not None and image.uploaded_at > filters.uploaded_before:
        return False
    if filters.filename:
        term = filters.filename.lower()
        if term not in image.filename.lower() and term not in image.original_filename.lower():
            return False
    if filters.tags and not catalog.has_tags(image.id, filters.tags, filters.match_all):
        return False
    return True


class _InMemoryStore:
    def __init__(self, catalog: InMemoryCatalog):
        self.catalog = catalog
        self.calls: Counter = Counter()

    def _record(self, operation: str):
        self.calls[operation] += 1

    async def commit(self) -> None:
        self._record("commit")

    async def rollback(self) -> None:
        self._record("rollback")


def _page(items: list, pagination: Pagination) -> list:
    return items[pagination.offset:pagination.offset + pagination.limit]


def _sorted_images(images, sort: SortParams) -> List[Image]:
    # Python's sort is stable, so sorting by id first keeps id ascending within equal keys
    by_id = sorted(images, key=lambda image: image.id)
    return sorted(by_id, key=lambda image: getattr(image, sort.field), reverse=sort.descending)


class InMemoryTagStore(_InMemoryStore, TagStore):
    """TagStore over an :class:`InMemoryCatalog`."""

    async def get_by_id(self, id: int) -> Optional[Tag]:
        self._record("get_by_id")
        return self.catalog.tags.get(id)

    async def get_by_name(self, name: str) -> Optional[Tag]:
        self._record("get_by_name")
        for tag in self.catalog.tags.values():
            if tag.name == name:
                return tag
        return None

    async def create(self, tag: Tag) -> Tag:
        self._record("create")
        if any(existing.name == tag.name for existing in self.catalog.tags.values()):
            raise DuplicateException("Tag", tag.name)

        tag.id = self.catalog.next_tag_id()
        tag.created_at = tag.created_at or utcnow()
        if tag.is_predefined is None:
            tag.is_predefined = False
        if tag.is_active is None:
            tag.is_active = True
        if tag.display_order is None:
            tag.display_order = 0
        self.catalog.tags[tag.id] = tag
        return tag

    async def delete(self, id: int) -> bool:
        self._record("delete")
        if self.catalog.tags.pop(id, None) is None:
            return False
        for key in [key for key in self.catalog.image_tags if key[1] == id]:
            del self.catalog.image_tags[key]
        return True

    async def list(self, pagination: Pagination) -> List[Tag]:
        self._record("list")
        tags = sorted(self.catalog.tags.values(), key=lambda tag: tag.name)
        return _page(tags, pagination)

    async def search(self, query: str, pagination: Pagination) -> List[Tag]:
        self._record("search")
        needle = query.strip().lower()
        tags = sorted(
            (tag for tag in self.catalog.tags.values() if needle in tag.name),
            key=lambda tag: tag.name,
        )
        return _page(tags, pagination)

    async def count(self) -> int:
        self._record("count")
        return len(self.catalog.tags)

    async def get_popular(self, limit: int) -> List[Tuple[Tag, int]]:
        self._record("get_popular")
        counts = Counter(tag_id for (_, tag_id) in self.catalog.image_tags)
        ranked = sorted(
            ((tag, counts[tag.id]) for tag in self.catalog.tags.values() if tag.is_active),
            key=lambda pair: (-pair[1], pair[0].name),
        )
        return ranked[:limit]

    async def get_predefined(self) -> List[Tag]:
        self._record("get_predefined")
        return sorted(
            (
                tag for tag in self.catalog.tags.values()
                if tag.is_predefined and tag.is_active
            ),
            key=lambda tag: (tag.display_order, tag.name),
        )

    async def upsert_predefined(self, definition: PredefinedTag) -> Tag:
        self._record("upsert_predefined")
        tag = await self.get_by_name(definition.name)
        if tag is None:
            tag = await self.create(Tag(name=definition.name))
        tag.description = definition.description
        tag.category = definition.category
        tag.display_order = definition.display_order
        tag.is_predefined = True
        tag.is_active = True
        return tag

    async def set_image_tags(self, image_id: int, tag_ids: Sequence[int]) -> None:
        self._record("set_image_tags")
        unique_ids = list(dict.fromkeys(tag_ids))
        if image_id not in self.catalog.images:
            raise DatabaseException(f"image {image_id} does not exist")
        missing = [tag_id for tag_id in unique_ids if tag_id not in self.catalog.tags]
        if missing:
            raise DatabaseException(f"tags {missing} do not exist")

        for key in [key for key in self.catalog.image_tags if key[0] == image_id]:
            del self.catalog.image_tags[key]
        now = utcnow()
        for tag_id in unique_ids:
            self.catalog.image_tags[(image_id, tag_id)] = now

    async def add_to_image(self, image_id: int, tag_id: int) -> bool:
        self._record("add_to_image")
        if (image_id, tag_id) in self.catalog.image_tags:
            return False
        if image_id not in self.catalog.images or tag_id not in self.catalog.tags:
            raise DatabaseException(f"cannot associate tag {tag_id} with image {image_id}")
        self.catalog.image_tags[(image_id, tag_id)] = utcnow()
        return True

    async def remove_from_image(self, image_id: int, tag_id: int) -> bool:
        self._record("remove_from_image")
        return self.catalog.image_tags.pop((image_id, tag_id), None) is not None

    async def get_image_tags(self, image_id: int) -> List[Tag]:
        self._record("get_image_tags")
        tags = [
            self.catalog.tags[tag_id]
            for (owner, tag_id) in self.catalog.image_tags
            if owner == image_id
        ]
        return sorted(tags, key=lambda tag: tag.name)

    async def get_tags_for_images(self, image_ids: Sequence[int]) -> List[Tuple[int, Tag]]:
        self._record("get_tags_for_images")
        wanted = set(image_ids)
        rows = [
            (image_id, self.catalog.tags[tag_id])
            for (image_id, tag_id) in self.catalog.image_tags
            if image_id in wanted
        ]
        return sorted(rows, key=lambda row: (row[0], row[1].name))

    async def count_image_tags(self, image_id: int) -> int:
        self._record("count_image_tags")
        return sum(1 for (owner, _) in self.catalog.image_tags if owner == image_id)

    async def count_tag_images(self, tag_id: int) -> int:
        self._record("count_tag_images")
        return sum(1 for (_, owner) in self.catalog.image_tags if owner == tag_id)

    async def get_tag_images(self, tag_id: int, pagination: Pagination) -> List[Image]:
        self._record("get_tag_images")
        images = [
            self.catalog.images[image_id]
            for (image_id, owner) in self.catalog.image_tags
            if owner == tag_id
        ]
        return _page(_sorted_images(images, SortParams()), pagination)

    async def get_with_image_count(self, pagination: Pagination) -> List[Tuple[Tag, int]]:
        self._record("get_with_image_count")
        counts = Counter(tag_id for (_, tag_id) in self.catalog.image_tags)
        tags = sorted(self.catalog.tags.values(), key=lambda tag: tag.name)
        return _page([(tag, counts[tag.id]) for tag in tags], pagination)

    async def get_unused(self) -> List[Tag]:
        self._record("get_unused")
        used = {tag_id for (_, tag_id) in self.catalog.image_tags}
        return sorted(
            (tag for tag in self.catalog.tags.values() if tag.id not in used),
            key=lambda tag: tag.name,
        )

    async def get_usage_totals(self) -> Tuple[int, int]:
        self._record("get_usage_totals")
        tagged = {image_id for (image_id, _) in self.catalog.image_tags}
        return len(self.catalog.image_tags), len(tagged)


class InMemoryImageStore(_InMemoryStore, ImageStore):
    """ImageStore over an :class:`InMemoryCatalog`."""

    async def create(self, image: Image) -> Image:
        self._record("create")
        for existing in self.catalog.images.values():
            if existing.filename == image.filename:
                raise DuplicateException("Image", image.filename)
            if existing.storage_path == image.storage_path:
                raise DuplicateException("Image", image.storage_path)

        now = utcnow()
        image.id = self.catalog.next_image_id()
        image.uploaded_at = image.uploaded_at or now
        image.created_at = image.created_at or now
        image.updated_at = image.updated_at or now
        image.extra_metadata = image.extra_metadata or "{}"
        self.catalog.images[image.id] = image
        return image

    async def get_by_id(self, id: int) -> Optional[Image]:
        self._record("get_by_id")
        return self.catalog.images.get(id)

    async def get_by_filename(self, filename: str) -> Optional[Image]:
        self._record("get_by_filename")
        for image in self.catalog.images.values():
            if image.filename == filename:
                return image
        return None

    async def get_by_storage_path(self, storage_path: str) -> Optional[Image]:
        self._record("get_by_storage_path")
        for image in self.catalog.images.values():
            if image.storage_path == storage_path:
                return image
        return None

    async def update(self, image: Image) -> Image:
        self._record("update")
        if image.id not in self.catalog.images:
            raise DatabaseException(f"image {image.id} does not exist")
        self.catalog.images[image.id] = image
        return image

    async def update_thumbnail(self, id: int, thumbnail_path: str) -> bool:
        self._record("update_thumbnail")
        image = self.catalog.images.get(id)
        if image is None:
            return False
        image.thumbnail_path = thumbnail_path
        image.updated_at = utcnow()
        return True

    async def delete(self, id: int) -> bool:
        self._record("delete")
        if self.catalog.images.pop(id, None) is None:
            return False
        for key in [key for key in self.catalog.image_tags if key[0] == id]:
            del self.catalog.image_tags[key]
        return True

    async def list(self, pagination: Pagination, sort: SortParams) -> List[Image]:
        self._record("list")
        return _page(_sorted_images(self.catalog.images.values(), sort), pagination)

    async def list_by_content_type(
        self, content_type: str, pagination: Pagination
    ) -> List[Image]:
        self._record("list_by_content_type")
        matching = [
            image for image in self.catalog.images.values()
            if image.content_type == content_type
        ]
        return _page(_sorted_images(matching, SortParams()), pagination)

    def _matching(self, names: Sequence[str], match_all: bool) -> List[Image]:
        return [
            image for image in self.catalog.images.values()
            if self.catalog.has_tags(image.id, names, match_all)
        ]

    async def find_by_tags(
        self,
        names: Sequence[str],
        match_all: bool,
        pagination: Pagination,
        sort: SortParams,
    ) -> List[Image]:
        self._record("find_by_tags")
        if not names:
            return []
        return _page(_sorted_images(self._matching(names, match_all), sort), pagination)

    async def count_by_tags(self, names: Sequence[str], match_all: bool) -> int:
        self._record("count_by_tags")
        if not names:
            return 0
        return len(self._matching(names, match_all))

    def _searched(self, filters: SearchFilters) -> List[Image]:
        return [
            image for image in self.catalog.images.values()
            if _matches(image, filters, self.catalog)
        ]

    async def search(
        self,
        filters: SearchFilters,
        pagination: Pagination,
        sort: SortParams,
    ) -> List[Image]:
        self._record("search")
        return _page(_sorted_images(self._searched(filters), sort), pagination)

    async def count_search(self, filters: SearchFilters) -> int:
        self._record("count_search")
        return len(self._searched(filters))

    async def get_by_date_range(
        self, start: datetime, end: datetime, pagination: Pagination
    ) -> List[Image]:
        self._record("get_by_date_range")
        matching = [
            image for image in self.catalog.images.values()
            if start <= image.uploaded_at <= end
        ]
        return _page(_sorted_images(matching, SortParams()), pagination)

    async def get_recent(self, since: datetime, limit: int) -> List[Image]:
        self._record("get_recent")
        matching = [
            image for image in self.catalog.images.values()
            if image.uploaded_at >= since
        ]
        return _sorted_images(matching, SortParams())[:clamp_recent_limit(limit)]

    async def get_largest(self, pagination: Pagination) -> List[Image]:
        self._record("get_largest")
        ordered = _sorted_images(self.catalog.images.values(), SortParams(field="file_size"))
        return _page(ordered, pagination)

    async def delete_by_storage_path(self, storage_path: str) -> bool:
        self._record("delete_by_storage_path")
        for image in list(self.catalog.images.values()):
            if image.storage_path == storage_path:
                return await self.delete(image.id)
        return False

    async def count(self) -> int:
        self._record("count")
        return len(self.catalog.images)

    async def count_by_content_type(self, content_type: str) -> int:
        self._record("count_by_content_type")
        return sum(
            1 for image in self.catalog.images.values()
            if image.content_type == content_type
        )

    async def get_stats(self) -> ImageStats:
        self._record("get_stats")
        sizes = [image.file_size for image in self.catalog.images.values()]
        if not sizes:
            return ImageStats()
        return ImageStats(
            total_images=len(sizes),
            content_types=len({image.content_type for image in self.catalog.images.values()}),
            total_size=sum(sizes),
            average_size=sum(sizes) / len(sizes),
            max_size=max(sizes),
            min_size=min(sizes),
        )
