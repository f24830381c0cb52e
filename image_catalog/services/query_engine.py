"""Read side of the catalog: paginated, sorted and tag-filtered image queries."""
import logging
from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from image_catalog.core.exceptions import NotFoundException
from image_catalog.core.tags import clean_tag_filter
from image_catalog.models.database import Image, Tag
from image_catalog.models.schemas import (
    ImageResponse,
    ImageStats,
    ListImagesRequest,
    ListImagesResponse,
    Pagination,
    SearchFilters,
    SortParams,
)
from image_catalog.repositories.interfaces import ImageStore, TagStore

logger = logging.getLogger(__name__)


class QueryEngine:
    """
    Resolves listing queries against the image and tag stores.

    Tags are never joined into the page query. A page is fetched first, then
    the tags of exactly those images are loaded in one batch and attached
    in memory, ordered by name.
    """

    def __init__(self, images: ImageStore, tags: TagStore):
        self.images = images
        self.tags = tags

    async def get_by_id(self, image_id: int) -> ImageResponse:
        """
        Get one image with its tags.

        Raises:
            NotFoundException: If image not found
        """
        image = await self.images.get_by_id(image_id)
        if image is None:
            raise NotFoundException("Image", image_id)
        tags = await self.tags.get_image_tags(image_id)
        return ImageResponse.from_model(image, tags)

    async def list(
        self,
        pagination: Pagination,
        sort: Optional[SortParams] = None,
    ) -> Tuple[List[Image], int]:
        """
        One page of all images, without tags.

        Returns:
            Tuple of (images, exact total count)
        """
        sort = sort or SortParams()
        images = await self.images.list(pagination, sort)
        total = await self.images.count()
        return images, total

    async def list_with_tags(
        self,
        pagination: Pagination,
        sort: Optional[SortParams] = None,
    ) -> List[ImageResponse]:
        """One page of all images, each carrying its tags."""
        images = await self.images.list(pagination, sort or SortParams())
        return await self._attach_tags(images)

    async def get_by_tags(
        self,
        tag_names: Iterable[str],
        match_all: bool,
        pagination: Pagination,
        sort: Optional[SortParams] = None,
    ) -> List[ImageResponse]:
        """
        One page of images filtered by tag names.

        Args:
            tag_names: Raw tag names, normalized and de-duplicated here
            match_all: Require every tag instead of any
            pagination: Limit/offset window
            sort: Sort specification, ``uploaded_at desc`` if omitted

        Returns:
            Images with their tags; empty without querying when no names remain
        """
        names = clean_tag_filter(tag_names)
        if not names:
            return []
        images = await self.images.find_by_tags(names, match_all, pagination, sort or SortParams())
        return await self._attach_tags(images)

    async def count_by_tags(self, tag_names: Iterable[str], match_all: bool) -> int:
        """Exact number of images matching the tag filter."""
        names = clean_tag_filter(tag_names)
        if not names:
            return 0
        return await self.images.count_by_tags(names, match_all)

    async def search(
        self,
        filters: SearchFilters,
        pagination: Pagination,
        sort: Optional[SortParams] = None,
    ) -> List[ImageResponse]:
        """One page of images matching attribute and tag filters, with tags."""
        images = await self.images.search(filters, pagination, sort or SortParams())
        return await self._attach_tags(images)

    async def count_search(self, filters: SearchFilters) -> int:
        return await self.images.count_search(filters)

    async def get_by_date_range(
        self, start: datetime, end: datetime, pagination: Pagination
    ) -> List[ImageResponse]:
        return await self._attach_tags(await self.images.get_by_date_range(start, end, pagination))

    async def get_recent(self, since: datetime, limit: int) -> List[ImageResponse]:
        return await self._attach_tags(await self.images.get_recent(since, limit))

    async def get_largest(self, pagination: Pagination) -> List[ImageResponse]:
        return await self._attach_tags(await self.images.get_largest(pagination))

    async def get_tag_images(self, tag_id: int, pagination: Pagination) -> List[ImageResponse]:
        """One page of the images carrying a tag, newest first."""
        return await self._attach_tags(await self.tags.get_tag_images(tag_id, pagination))

    async def count(self) -> int:
        return await self.images.count()

    async def count_by_content_type(self, content_type: str) -> int:
        return await self.images.count_by_content_type(content_type)

    async def get_stats(self) -> ImageStats:
        return await self.images.get_stats()

    async def search_listing(self, request: ListImagesRequest) -> ListImagesResponse:
        """
        Run a listing request and assemble its page metadata.

        Attribute filters (type, size, date, filename) go through the search
        path, which applies tag filters too. Tag-only filters go through the
        set-membership path, everything else through the plain listing.
        Either way the total is an exact count of the whole result set.
        """
        filters = request.search_filters()
        names = filters.tags
        pagination = request.pagination()
        sort = request.sort()

        if filters.has_attribute_filters:
            images = await self.search(filters, pagination, sort)
            total = await self.count_search(filters)
        elif names:
            images = await self.get_by_tags(names, request.match_all, pagination, sort)
            total = await self.count_by_tags(names, request.match_all)
        else:
            images = await self.list_with_tags(pagination, sort)
            total = await self.count()

        logger.debug(
            f"Listing page {request.page} (size {request.page_size}, tags={names}, "
            f"match_all={request.match_all}): {len(images)} of {total}"
        )
        return ListImagesResponse.build(images, total, request.page, request.page_size)

    async def _attach_tags(self, images: List[Image]) -> List[ImageResponse]:
        if not images:
            return []

        tags_by_image: Dict[int, List[Tag]] = defaultdict(list)
        for image_id, tag in await self.tags.get_tags_for_images([image.id for image in images]):
            tags_by_image[image_id].append(tag)

        return [
            ImageResponse.from_model(image, tags_by_image.get(image.id, []))
            for image in images
        ]
