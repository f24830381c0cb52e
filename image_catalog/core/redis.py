"""Redis client configuration and utilities."""
import logging
from typing import Optional

import redis.asyncio as redis

from .config import Settings, settings

logger = logging.getLogger(__name__)


class RedisClient:
    """Async Redis client wrapper with utility methods."""

    def __init__(
        self,
        url: str,
        max_connections: int = 50,
        socket_timeout: Optional[float] = None,
    ):
        self.url = url
        self.max_connections = max_connections
        self.socket_timeout = socket_timeout
        self._client: Optional[redis.Redis] = None

    @classmethod
    def from_settings(cls, config: Settings) -> "RedisClient":
        return cls(
            config.redis_url,
            max_connections=config.redis_max_connections,
            socket_timeout=config.cache_timeout_seconds,
        )

    async def connect(self):
        """Initialize the Redis connection pool (lazy, idempotent)."""
        if self._client is None:
            self._client = redis.from_url(
                self.url,
                encoding="utf-8",
                decode_responses=True,
                max_connections=self.max_connections,
                socket_timeout=self.socket_timeout,
                socket_connect_timeout=self.socket_timeout,
            )

    async def disconnect(self):
        """Close Redis connection."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get(self, key: str) -> Optional[str]:
        """Get value by key."""
        await self.connect()
        return await self._client.get(key)

    async def set(
        self,
        key: str,
        value: str,
        ex: Optional[int] = None
    ):
        """
        Set key-value pair with optional expiration.

        Args:
            key: Cache key
            value: Value to store
            ex: Expiration time in seconds
        """
        await self.connect()
        await self._client.set(key, value, ex=ex)

    async def delete(self, key: str):
        """Delete key."""
        await self.connect()
        await self._client.delete(key)

    async def clear_pattern(self, pattern: str) -> int:
        """
        Delete all keys matching pattern.

        Uses SCAN rather than KEYS so a large keyspace never blocks the server.

        Returns:
            Number of keys deleted
        """
        await self.connect()
        deleted = 0
        cursor = 0
        while True:
            cursor, keys = await self._client.scan(
                cursor=cursor,
                match=pattern,
                count=100
            )
            if keys:
                deleted += await self._client.delete(*keys)
            if cursor == 0:
                break
        return deleted

    async def ping(self) -> bool:
        """Check if Redis is accessible."""
        await self.connect()
        return bool(await self._client.ping())


# Singleton instance
redis_client = RedisClient.from_settings(settings)
