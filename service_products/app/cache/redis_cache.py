"""
Redis hash cache for Products Service.
"""

from typing import Dict, List, Mapping, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError
from shared.logging import get_logger
from shared.errors import CacheError


class RedisHashCache:
    """Redis client storing one hash per product key."""

    def __init__(self, redis_url: str, socket_timeout: float = 5):
        self.redis_url = redis_url
        self.socket_timeout = socket_timeout
        self.logger = get_logger("products.cache.redis")
        self.redis: Optional[redis.Redis] = None

    async def start(self):
        """Start the Redis cache."""
        self.redis = redis.from_url(
            self.redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=self.socket_timeout,
            socket_timeout=self.socket_timeout,
            health_check_interval=30
        )

        # Test connection
        try:
            await self.redis.ping()
        except (RedisError, OSError) as e:
            self.logger.error("Failed to start Redis cache", error=str(e))
            raise CacheError(str(e)) from e

        self.logger.info("Redis cache started")

    async def stop(self):
        """Stop the Redis cache."""
        if self.redis:
            await self.redis.aclose()
            self.redis = None
            self.logger.info("Redis cache stopped")

    def _client(self) -> redis.Redis:
        if self.redis is None:
            raise CacheError("Redis cache not started")
        return self.redis

    async def hgetall(self, key: str) -> Dict[str, str]:
        """Get every field of a hash; empty when the key is absent."""
        try:
            return await self._client().hgetall(key)
        except (RedisError, OSError) as e:
            raise CacheError(str(e), {"key": key}) from e

    async def hset(self, key: str, mapping: Mapping[str, str]) -> None:
        """Set hash fields under a key."""
        try:
            await self._client().hset(key, mapping=dict(mapping))
        except (RedisError, OSError) as e:
            raise CacheError(str(e), {"key": key}) from e

    async def delete(self, *keys: str) -> int:
        """Delete keys, returning how many existed."""
        if not keys:
            return 0
        try:
            return await self._client().delete(*keys)
        except (RedisError, OSError) as e:
            raise CacheError(str(e), {"keys": list(keys)}) from e

    async def keys(self, pattern: str) -> List[str]:
        """List keys matching a glob pattern using SCAN."""
        try:
            return [key async for key in self._client().scan_iter(match=pattern, count=500)]
        except (RedisError, OSError) as e:
            raise CacheError(str(e), {"pattern": pattern}) from e

    async def health_check(self) -> bool:
        """Check Redis health."""
        try:
            await self._client().ping()
            return True
        except Exception:
            return False
