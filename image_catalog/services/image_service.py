"""Image service: cached reads and consistent writes over the catalog."""
import hashlib
import logging
import time
from datetime import datetime
from pathlib import PurePosixPath
from typing import BinaryIO, List, Optional, Tuple, Union

from image_catalog.core.exceptions import (
    CacheUnavailableException,
    NotFoundException,
    StorageException,
)
from image_catalog.core.timeutil import naive_utc, utcnow
from image_catalog.models.database import Image
from image_catalog.models.schemas import (
    ImageCreate,
    ImageResponse,
    ImageStats,
    ImageUpdate,
    ImageURLResponse,
    ListImagesRequest,
    ListImagesResponse,
    PaginationParams,
)
from image_catalog.repositories.interfaces import ImageStore, TagStore
from image_catalog.services.cache_service import CacheService
from image_catalog.services.events import EventPublisher
from image_catalog.services.query_engine import QueryEngine
from image_catalog.services.storage_service import (
    DEFAULT_URL_EXPIRY,
    StorageBackend,
    sanitize_filename,
)
from image_catalog.services.tag_service import TagService
from image_catalog.services.validation_service import ValidationService

logger = logging.getLogger(__name__)

IMAGE_STATS_KEY = "images"


def generate_filename(original_filename: str) -> str:
    """``<stem>_<8 hex chars><ext>``, unique per call."""
    name = PurePosixPath(original_filename.replace("\\", "/"))
    stem = sanitize_filename(name.stem)
    digest = hashlib.sha256(f"{stem}{time.time_ns()}".encode("utf-8")).hexdigest()
    return f"{stem}_{digest[:8]}{name.suffix.lower()}"


class ImageService:
    """
    Service for image operations.

    Reads go through the cache and fall back to the stores whenever the
    cache misses or is unavailable. Writes commit to the stores first, then
    invalidate the image's own entry and every cached listing.
    """

    def __init__(
        self,
        images: ImageStore,
        tags: TagStore,
        storage: StorageBackend,
        cache: Optional[CacheService] = None,
        validator: Optional[ValidationService] = None,
        events: Optional[EventPublisher] = None,
    ):
        """
        Initialize image service.

        Args:
            images: Image store
            tags: Tag store sharing the image store's transaction
            storage: File storage backend
            cache: Cache service; a disabled cache if omitted
            validator: Validation rules; the default rules if omitted
            events: Event publisher; a silent one if omitted
        """
        self.images = images
        self.tags = tags
        self.storage = storage
        self.cache = cache or CacheService(None)
        self.validator = validator or ValidationService()
        self.events = events or EventPublisher()
        self.query = QueryEngine(images, tags)
        self.tag_service = TagService(tags, self.cache)

    # Reads

    async def get_image(self, image_id: int) -> ImageResponse:
        """
        Get image by ID.

        Raises:
            NotFoundException: If image not found
        """
        try:
            cached = await self.cache.get_image(image_id)
        except CacheUnavailableException:
            cached = None
        if cached is not None:
            logger.debug(f"Cache hit for image {image_id}")
            return cached

        image = await self.query.get_by_id(image_id)
        await self.cache.set_image(image)
        return image

    async def list_images(self, request: ListImagesRequest) -> ListImagesResponse:
        """
        List images with pagination, sorting and tag filters.

        Args:
            request: Listing parameters

        Returns:
            One page of images with exact totals
        """
        fingerprint = self.cache.fingerprint(request)
        try:
            cached = await self.cache.get_list(fingerprint)
        except CacheUnavailableException:
            cached = None
        if cached is not None:
            logger.debug(f"Cache hit for listing {fingerprint[:12]}")
            return cached

        response = await self.query.search_listing(request)
        await self.cache.set_list(fingerprint, response)
        return response

    async def get_image_stats(self) -> ImageStats:
        try:
            cached = await self.cache.get_stat(IMAGE_STATS_KEY)
        except CacheUnavailableException:
            cached = None
        if cached is not None:
            return ImageStats.model_validate(cached)

        stats = await self.query.get_stats()
        await self.cache.set_stat(IMAGE_STATS_KEY, stats.model_dump())
        return stats

    async def count_images(self) -> int:
        return await self.query.count()

    async def get_recent_images(self, since: datetime, limit: int) -> List[ImageResponse]:
        """Images uploaded at or after ``since``, newest first."""
        return await self.query.get_recent(naive_utc(since), limit)

    async def get_largest_images(self, page: int, page_size: int) -> ListImagesResponse:
        """Images by file size, largest first."""
        pagination = PaginationParams(page=page, page_size=page_size).to_pagination()
        images = await self.query.get_largest(pagination)
        return ListImagesResponse.build(images, await self.query.count(), page, page_size)

    async def list_tag_images(self, tag_id: int, page: int, page_size: int) -> ListImagesResponse:
        """
        Images carrying one tag, newest first.

        Raises:
            NotFoundException: If tag not found
        """
        await self.tag_service.get_tag(tag_id)
        pagination = PaginationParams(page=page, page_size=page_size).to_pagination()
        images = await self.query.get_tag_images(tag_id, pagination)
        total = await self.tags.count_tag_images(tag_id)
        return ListImagesResponse.build(images, total, page, page_size)

    async def generate_image_url(
        self, image_id: int, expiry: int = DEFAULT_URL_EXPIRY
    ) -> ImageURLResponse:
        image = await self.get_image(image_id)
        url = self.storage.generate_url(image.storage_path, expiry)
        return ImageURLResponse(url=url, expires_in=expiry if expiry > 0 else DEFAULT_URL_EXPIRY)

    async def download_image(self, image_id: int) -> Tuple[BinaryIO, ImageResponse]:
        """
        Open the stored file of an image.

        Returns:
            Tuple of (open binary stream, image); the caller closes the stream

        Raises:
            NotFoundException: If image not found
            StorageException: If the file cannot be read
        """
        image = await self.get_image(image_id)
        return self.storage.retrieve(image.storage_path), image

    # Writes

    async def create_image(
        self,
        request: ImageCreate,
        data: Union[bytes, BinaryIO],
    ) -> ImageResponse:
        """
        Store an uploaded file and register it with its tags.

        The image row and its tag associations land together or not at all:
        if attaching tags fails after the row was committed, the row is
        deleted again and the stored file removed before the error is
        re-raised.

        Args:
            request: Upload fields
            data: File content

        Returns:
            Created image with its tags

        Raises:
            ValidationException: Invalid field or tag name
            DuplicateException: Two tag names are equal after normalization
            StorageException: The file could not be stored
        """
        self.validator.validate_upload(request)
        storage_path = self.storage.store(
            request.original_filename, request.content_type, data, request.file_size
        )

        try:
            tags = await self.tag_service.resolve_tags(request.tags)
            image = Image(
                filename=generate_filename(request.original_filename),
                original_filename=request.original_filename,
                content_type=request.content_type,
                file_size=request.file_size,
                storage_path=storage_path,
                width=request.width,
                height=request.height,
                extra_metadata=request.extra_metadata,
                uploaded_at=utcnow(),
            )
            self.validator.validate_entity(image, tags)
            image = await self.images.create(image)
            await self.images.commit()
        except Exception:
            await self.images.rollback()
            self._discard_file(storage_path)
            raise

        try:
            await self.tags.set_image_tags(image.id, [tag.id for tag in tags])
            await self.tags.commit()
        except Exception as e:
            logger.error(f"Attaching tags to image {image.id} failed, removing it: {e}")
            await self._compensate_create(image.id, storage_path)
            raise

        response = ImageResponse.from_model(image, tags)
        await self._invalidate(image.id)
        logger.info(f"Created image {image.id} ({image.filename}) with tags {[t.name for t in tags]}")
        await self._publish("on_image_created", response)
        return response

    async def update_image(self, image_id: int, request: ImageUpdate) -> ImageResponse:
        """
        Replace the tag set of an image.

        Raises:
            NotFoundException: If image not found
            ValidationException: Invalid tag name or too many tags
            DuplicateException: Two tag names are equal after normalization
        """
        self.validator.validate_update(image_id, request)
        image = await self.images.get_by_id(image_id)
        if image is None:
            raise NotFoundException("Image", image_id)

        try:
            tags = await self.tag_service.resolve_tags(request.tags)
            self.validator.validate_entity(image, tags)
            await self.tags.set_image_tags(image_id, [tag.id for tag in tags])
            image.updated_at = utcnow()
            image = await self.images.update(image)
            await self.images.commit()
        except Exception:
            await self.images.rollback()
            raise

        response = ImageResponse.from_model(image, tags)
        await self._invalidate(image_id)
        logger.info(f"Updated image {image_id}, tags now {[t.name for t in tags]}")
        await self._publish("on_image_updated", response)
        return response

    async def delete_image(self, image_id: int) -> None:
        """
        Delete an image, its tag associations and its file.

        The file is removed after the row is committed. A failure there is
        logged and leaves an orphaned file, the deletion itself stands.

        Raises:
            NotFoundException: If image not found
        """
        self.validator.validate_deletion(image_id)
        image = await self.images.get_by_id(image_id)
        if image is None:
            raise NotFoundException("Image", image_id)
        snapshot = ImageResponse.from_model(image, await self.tags.get_image_tags(image_id))

        try:
            await self.images.delete(image_id)
            await self.images.commit()
        except Exception:
            await self.images.rollback()
            raise

        for path in (snapshot.storage_path, snapshot.thumbnail_path):
            if path:
                self._discard_file(path)

        await self._invalidate(image_id)
        logger.info(f"Deleted image {image_id} ({snapshot.filename})")
        await self._publish("on_image_deleted", snapshot)

    # Helpers

    async def _invalidate(self, image_id: int):
        await self.cache.delete_image(image_id)
        await self.cache.invalidate_all_lists()
        await self.cache.delete_stat(IMAGE_STATS_KEY)

    async def _compensate_create(self, image_id: int, storage_path: str):
        """Undo a committed image row whose tags could not be attached."""
        try:
            await self.images.rollback()
            await self.images.delete(image_id)
            await self.images.commit()
        except Exception as e:
            logger.exception(f"Compensation for image {image_id} failed, row may remain: {e}")
        self._discard_file(storage_path)

    def _discard_file(self, path: str):
        try:
            self.storage.delete(path)
        except StorageException as e:
            logger.warning(f"Could not remove stored file {path}: {e}")

    async def _publish(self, handler: str, image: ImageResponse):
        try:
            await getattr(self.events, handler)(image)
        except Exception as e:
            logger.warning(f"Publishing {handler} for image {image.id} failed: {e}")
