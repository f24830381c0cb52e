"""Abstract contracts for the image and tag stores.

Services depend on these interfaces, not on SQLAlchemy. The SQL
repositories are the production implementation; ``memory`` holds a
dict-backed one used by the service tests.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from image_catalog.core.constants import PredefinedTag
from image_catalog.models.database import Image, Tag
from image_catalog.models.schemas import ImageStats, Pagination, SearchFilters, SortParams


class UnitOfWork(ABC):
    """Transaction boundary shared by every store bound to the same session."""

    @abstractmethod
    async def commit(self) -> None:
        """Make pending writes durable."""

    @abstractmethod
    async def rollback(self) -> None:
        """Discard pending writes."""


class TagStore(UnitOfWork):
    """Persistence contract for tags and image-tag associations."""

    @abstractmethod
    async def get_by_id(self, id: int) -> Optional[Tag]:
        """Return the tag, or None."""

    @abstractmethod
    async def get_by_name(self, name: str) -> Optional[Tag]:
        """Return the tag with this normalized name, or None."""

    @abstractmethod
    async def create(self, tag: Tag) -> Tag:
        """Insert a tag.

        Raises:
            DuplicateException: The name is already taken
        """

    @abstractmethod
    async def delete(self, id: int) -> bool:
        """Delete a tag and its associations. False if it did not exist."""

    @abstractmethod
    async def list(self, pagination: Pagination) -> List[Tag]:
        """One page of tags by name."""

    @abstractmethod
    async def search(self, query: str, pagination: Pagination) -> List[Tag]:
        """Tags whose name contains ``query``."""

    @abstractmethod
    async def count(self) -> int:
        """Total number of tags."""

    @abstractmethod
    async def get_popular(self, limit: int) -> List[Tuple[Tag, int]]:
        """Active tags with their image counts, most used first."""

    @abstractmethod
    async def get_predefined(self) -> List[Tag]:
        """Active curated tags by display order."""

    @abstractmethod
    async def upsert_predefined(self, definition: PredefinedTag) -> Tag:
        """Insert a curated tag or refresh an existing one from ``definition``."""

    @abstractmethod
    async def set_image_tags(self, image_id: int, tag_ids: Sequence[int]) -> None:
        """Replace every association of ``image_id`` with ``tag_ids``."""

    @abstractmethod
    async def add_to_image(self, image_id: int, tag_id: int) -> bool:
        """Associate a tag. False if the association already existed."""

    @abstractmethod
    async def remove_from_image(self, image_id: int, tag_id: int) -> bool:
        """Drop an association. False if there was none."""

    @abstractmethod
    async def get_image_tags(self, image_id: int) -> List[Tag]:
        """Tags of one image by name."""

    @abstractmethod
    async def get_tags_for_images(self, image_ids: Sequence[int]) -> List[Tuple[int, Tag]]:
        """``(image_id, tag)`` rows for a batch of images.

        Ordered by image id, then tag name.
        """

    @abstractmethod
    async def count_image_tags(self, image_id: int) -> int:
        """Number of tags on an image."""

    @abstractmethod
    async def count_tag_images(self, tag_id: int) -> int:
        """Number of images carrying a tag."""

    @abstractmethod
    async def get_tag_images(self, tag_id: int, pagination: Pagination) -> List[Image]:
        """Images carrying a tag, newest first, ties broken by id ascending."""

    @abstractmethod
    async def get_with_image_count(self, pagination: Pagination) -> List[Tuple[Tag, int]]:
        """Every tag by name with its image count, unused tags included."""

    @abstractmethod
    async def get_unused(self) -> List[Tag]:
        """Tags attached to no image, by name."""

    @abstractmethod
    async def get_usage_totals(self) -> Tuple[int, int]:
        """``(association count, number of images with at least one tag)``."""


class ImageStore(UnitOfWork):
    """Persistence contract for image rows."""

    @abstractmethod
    async def create(self, image: Image) -> Image:
        """Insert an image row and return it with its generated id."""

    @abstractmethod
    async def get_by_id(self, id: int) -> Optional[Image]:
        """Return the image, or None."""

    @abstractmethod
    async def get_by_filename(self, filename: str) -> Optional[Image]:
        """Return the image stored under ``filename``, or None."""

    @abstractmethod
    async def get_by_storage_path(self, storage_path: str) -> Optional[Image]:
        """Return the image backed by ``storage_path``, or None."""

    @abstractmethod
    async def update(self, image: Image) -> Image:
        """Persist changes made to a loaded image."""

    @abstractmethod
    async def update_thumbnail(self, id: int, thumbnail_path: str) -> bool:
        """Set the thumbnail reference. False if the image does not exist."""

    @abstractmethod
    async def delete(self, id: int) -> bool:
        """Delete an image row; its associations cascade."""

    @abstractmethod
    async def list(self, pagination: Pagination, sort: SortParams) -> List[Image]:
        """One page of images in ``sort`` order, ties broken by id ascending."""

    @abstractmethod
    async def list_by_content_type(
        self, content_type: str, pagination: Pagination
    ) -> List[Image]:
        """Newest images of one content type."""

    @abstractmethod
    async def find_by_tags(
        self,
        names: Sequence[str],
        match_all: bool,
        pagination: Pagination,
        sort: SortParams,
    ) -> List[Image]:
        """Images carrying every (``match_all``) or any of the tag ``names``."""

    @abstractmethod
    async def count_by_tags(self, names: Sequence[str], match_all: bool) -> int:
        """Exact size of the :meth:`find_by_tags` result set."""

    @abstractmethod
    async def search(
        self,
        filters: SearchFilters,
        pagination: Pagination,
        sort: SortParams,
    ) -> List[Image]:
        """Images satisfying every criterion of ``filters``."""

    @abstractmethod
    async def count_search(self, filters: SearchFilters) -> int:
        """Exact size of the :meth:`search` result set."""

    @abstractmethod
    async def get_by_date_range(
        self, start: datetime, end: datetime, pagination: Pagination
    ) -> List[Image]:
        """Images uploaded within ``start``..``end`` inclusive, newest first."""

    @abstractmethod
    async def get_recent(self, since: datetime, limit: int) -> List[Image]:
        """Images uploaded at or after ``since``, newest first.

        A ``limit`` outside 1..MAX_RECENT_LIMIT falls back to DEFAULT_RECENT_LIMIT.
        """

    @abstractmethod
    async def get_largest(self, pagination: Pagination) -> List[Image]:
        """Images by file size, largest first."""

    @abstractmethod
    async def delete_by_storage_path(self, storage_path: str) -> bool:
        """Delete the image backed by ``storage_path``. False if there is none."""

    @abstractmethod
    async def count(self) -> int:
        """Total number of images."""

    @abstractmethod
    async def count_by_content_type(self, content_type: str) -> int:
        """Number of images of one content type."""

    @abstractmethod
    async def get_stats(self) -> ImageStats:
        """Aggregate size and format figures."""
