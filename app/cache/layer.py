from typing import Optional

import structlog
from redis.asyncio import Redis, RedisError

from app.core.config import Settings

logger = structlog.get_logger(__name__)


class CacheLayer:
    """
    Redis key/value transport for the cache-aside entities.

    Features:
    - Per-key TTL on every write
    - Graceful degradation when Redis is unavailable: reads miss, writes are skipped
    - Automatic key namespacing
    """

    def __init__(self, settings: Settings, redis: Optional[Redis] = None):
        self._settings = settings
        self._redis: Redis | None = redis
        self._initialized = False

        # Stats tracking
        self.stats = {
            "hits": 0,
            "misses": 0,
            "errors": 0,
        }

    @property
    def available(self) -> bool:
        return self._redis is not None

    async def init_cache(self):
        """Open and verify the Redis connection."""
        if self._initialized:
            return

        try:
            if self._redis is None:
                self._redis = Redis.from_url(
                    self._settings.redis_dsn,
                    encoding="utf-8",
                    decode_responses=True,
                    max_connections=self._settings.redis_pool_size,
                    socket_connect_timeout=5,
                    socket_keepalive=True,
                    health_check_interval=30,
                )

            await self._redis.ping()
            logger.info("Redis connection established")

        except (RedisError, OSError) as e:
            logger.error("Redis initialization failed, caching disabled", error=str(e))
            self._redis = None

        self._initialized = True

    def _key(self, key: str) -> str:
        """Build namespaced cache key."""
        return f"{self._settings.cache_namespace}{key}"

    async def get(self, key: str) -> Optional[str]:
        """Return the raw cached string, or None on miss or Redis failure."""
        if not self._redis:
            self.stats["misses"] += 1
            return None

        try:
            raw = await self._redis.get(self._key(key))
        except RedisError as e:
            logger.error("Redis GET error", key=key, error=str(e))
            self.stats["errors"] += 1
            return None

        if raw is None:
            self.stats["misses"] += 1
            logger.debug("Cache miss", key=key)
            return None

        self.stats["hits"] += 1
        logger.debug("Cache hit", key=key)
        return raw

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        """
        Store a serialized value with a TTL.

        Args:
            key: Cache key (will be namespaced automatically)
            value: Already-serialized value
            ttl: Seconds to live (uses the configured default if None)

        Returns:
            True if Redis accepted the write
        """
        if not self._redis:
            return False

        try:
            await self._redis.set(
                self._key(key), value, ex=ttl or self._settings.cache_ttl_seconds
            )
            logger.debug("Stored in cache", key=key)
            return True
        except RedisError as e:
            logger.error("Redis SET error", key=key, error=str(e))
            self.stats["errors"] += 1
            return False

    async def delete(self, key: str) -> bool:
        """Delete a key. Missing keys and Redis failures are not errors for the caller."""
        if not self._redis:
            return False

        try:
            await self._redis.delete(self._key(key))
            logger.debug("Deleted from cache", key=key)
            return True
        except RedisError as e:
            logger.error("Redis DELETE error", key=key, error=str(e))
            self.stats["errors"] += 1
            return False

    async def close(self):
        """Graceful shutdown of cache connections."""
        if self._redis:
            try:
                await self._redis.aclose()
                logger.info("Redis connection closed")
            except RedisError as e:
                logger.error("Error closing Redis", error=str(e))

    def get_stats(self) -> dict:
        total = self.stats["hits"] + self.stats["misses"]
        return {
            **self.stats,
            "available": self.available,
            "hit_rate": self.stats["hits"] / total if total > 0 else 0,
        }
