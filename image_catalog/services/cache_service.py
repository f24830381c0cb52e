"""Cache service wrapping Redis operations."""
import asyncio
import hashlib
import json
import logging
from typing import Any, Optional

from pydantic import ValidationError
from redis.exceptions import RedisError

from image_catalog.core.config import Settings
from image_catalog.core.constants import (
    IMAGE_KEY_PREFIX,
    LIST_KEY_PREFIX,
    STATS_KEY_PREFIX,
)
from image_catalog.core.exceptions import CacheUnavailableException
from image_catalog.models.schemas import (
    ImageResponse,
    ListImagesRequest,
    ListImagesResponse,
)

logger = logging.getLogger(__name__)

# Failures that mean "the backend is not usable right now"
BACKEND_ERRORS = (RedisError, OSError, asyncio.TimeoutError)


class CacheService:
    """
    Read-through cache for images, listings and statistics.

    The cache is an accelerator and never a source of truth:

    * reads return None on a miss, and raise CacheUnavailableException when
      the backend is absent, failing, or slower than ``timeout``;
    * writes and deletes never raise, failures are logged and dropped.

    ``CacheService(None)`` is the disabled cache: every read reports
    unavailable and every write is a no-op.
    """

    def __init__(
        self,
        redis=None,
        image_ttl: int = 3600,
        list_ttl: int = 1800,
        stats_ttl: int = 300,
        timeout: float = 0.5,
        invalidation_timeout: float = 2.0,
    ):
        """
        Initialize cache service.

        Args:
            redis: Backend exposing get/set/delete/clear_pattern/ping, or None
            image_ttl: Default TTL for single-image entries (seconds)
            list_ttl: Default TTL for list entries (seconds)
            stats_ttl: Default TTL for statistics entries (seconds)
            timeout: Upper bound for one cache call (seconds)
            invalidation_timeout: Upper bound for a pattern invalidation (seconds)
        """
        self.redis = redis
        self.image_ttl = image_ttl
        self.list_ttl = list_ttl
        self.stats_ttl = stats_ttl
        self.timeout = timeout
        self.invalidation_timeout = invalidation_timeout

    @classmethod
    def from_settings(cls, redis, config: Settings) -> "CacheService":
        return cls(
            redis if config.cache_enabled else None,
            image_ttl=config.cache_image_ttl_seconds,
            list_ttl=config.cache_list_ttl_seconds,
            stats_ttl=config.cache_stats_ttl_seconds,
            timeout=config.cache_timeout_seconds,
            invalidation_timeout=config.cache_invalidation_timeout_seconds,
        )

    @property
    def enabled(self) -> bool:
        return self.redis is not None

    # Backend access

    async def _read(self, key: str) -> Optional[str]:
        if self.redis is None:
            raise CacheUnavailableException("cache disabled")
        try:
            return await asyncio.wait_for(self.redis.get(key), self.timeout)
        except BACKEND_ERRORS as e:
            logger.warning(f"Cache read failed for {key}: {e!r}")
            raise CacheUnavailableException(str(e) or type(e).__name__) from e

    async def _write(self, key: str, value: str, ttl: int):
        if self.redis is None:
            return
        try:
            await asyncio.wait_for(self.redis.set(key, value, ex=ttl), self.timeout)
        except BACKEND_ERRORS as e:
            logger.warning(f"Cache write failed for {key}: {e!r}")

    async def _delete(self, key: str):
        if self.redis is None:
            return
        try:
            await asyncio.wait_for(self.redis.delete(key), self.timeout)
        except BACKEND_ERRORS as e:
            logger.warning(f"Cache delete failed for {key}: {e!r}")

    async def clear_pattern(self, pattern: str) -> int:
        """
        Clear all keys matching pattern.

        Args:
            pattern: Key pattern (e.g., "image_list:*")

        Returns:
            Number of keys removed, 0 when the backend is unusable
        """
        if self.redis is None:
            return 0
        try:
            deleted = await asyncio.wait_for(
                self.redis.clear_pattern(pattern), self.invalidation_timeout
            )
        except BACKEND_ERRORS as e:
            logger.warning(f"Cache clear failed for {pattern}: {e!r}")
            return 0
        logger.debug(f"Cleared {deleted} cache keys matching {pattern}")
        return deleted or 0

    @staticmethod
    def _ttl(ttl: Optional[int], default: int) -> int:
        return ttl if ttl else default

    # Image caching

    async def get_image(self, image_id: int) -> Optional[ImageResponse]:
        """
        Get a cached image.

        Returns:
            The cached image or None on a miss

        Raises:
            CacheUnavailableException: Backend absent, failing or too slow
        """
        key = f"{IMAGE_KEY_PREFIX}{image_id}"
        payload = await self._read(key)
        if payload is None:
            logger.debug(f"Cache miss {key}")
            return None
        try:
            return ImageResponse.model_validate_json(payload)
        except ValidationError:
            logger.warning(f"Discarding unreadable cache entry {key}")
            return None

    async def set_image(self, image: ImageResponse, ttl: Optional[int] = None):
        """
        Cache an image.

        Args:
            image: Image to cache
            ttl: Time to live in seconds, 0/None for the default
        """
        await self._write(
            f"{IMAGE_KEY_PREFIX}{image.id}",
            image.model_dump_json(),
            self._ttl(ttl, self.image_ttl),
        )

    async def delete_image(self, image_id: int):
        await self._delete(f"{IMAGE_KEY_PREFIX}{image_id}")

    async def invalidate_all_images(self) -> int:
        return await self.clear_pattern(f"{IMAGE_KEY_PREFIX}*")

    # List caching

    async def get_list(self, fingerprint: str) -> Optional[ListImagesResponse]:
        """
        Get a cached listing by request fingerprint.

        Raises:
            CacheUnavailableException: Backend absent, failing or too slow
        """
        key = f"{LIST_KEY_PREFIX}{fingerprint}"
        payload = await self._read(key)
        if payload is None:
            logger.debug(f"Cache miss {key}")
            return None
        try:
            return ListImagesResponse.model_validate_json(payload)
        except ValidationError:
            logger.warning(f"Discarding unreadable cache entry {key}")
            return None

    async def set_list(
        self,
        fingerprint: str,
        response: ListImagesResponse,
        ttl: Optional[int] = None,
    ):
        await self._write(
            f"{LIST_KEY_PREFIX}{fingerprint}",
            response.model_dump_json(),
            self._ttl(ttl, self.list_ttl),
        )

    async def invalidate_all_lists(self) -> int:
        """
        Drop every cached listing.

        A single write can change arbitrarily many filtered or paginated
        views, so the whole namespace goes.
        """
        return await self.clear_pattern(f"{LIST_KEY_PREFIX}*")

    # Statistics caching

    async def get_stat(self, key: str) -> Optional[Any]:
        """
        Get a cached statistic (any JSON value).

        Raises:
            CacheUnavailableException: Backend absent, failing or too slow
        """
        full_key = f"{STATS_KEY_PREFIX}{key}"
        payload = await self._read(full_key)
        if payload is None:
            return None
        try:
            return json.loads(payload)
        except json.JSONDecodeError:
            logger.warning(f"Discarding unreadable cache entry {full_key}")
            return None

    async def set_stat(self, key: str, value: Any, ttl: Optional[int] = None):
        await self._write(
            f"{STATS_KEY_PREFIX}{key}",
            json.dumps(value),
            self._ttl(ttl, self.stats_ttl),
        )

    async def delete_stat(self, key: str):
        await self._delete(f"{STATS_KEY_PREFIX}{key}")

    # Keys

    @staticmethod
    def fingerprint(request: ListImagesRequest) -> str:
        """
        Deterministic cache key for a listing request.

        Requests that select the same rows in the same order map to the same
        key: tag names are normalized, de-duplicated and sorted, the sort is
        resolved through the whitelist, match-all is only significant
        with two or more tags. Attribute filters enter in normalized form.
        """
        filters = request.search_filters()
        tags = sorted(filters.tags)
        sort = request.sort()
        canonical = json.dumps(
            {
                "page": request.page,
                "page_size": request.page_size,
                "tags": tags,
                "match_all": request.match_all and len(tags) > 1,
                "sort_by": sort.field,
                "sort_order": sort.order,
                "filters": filters.model_dump(mode="json", exclude={"tags", "match_all"}),
            },
            sort_keys=True,
            separators=(",", ":"),
        )
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()

    # Health check

    async def ping(self) -> bool:
        """
        Check if cache is available.

        Returns:
            True if cache is responding
        """
        if self.redis is None:
            return False
        try:
            return bool(await asyncio.wait_for(self.redis.ping(), self.timeout))
        except BACKEND_ERRORS:
            return False
