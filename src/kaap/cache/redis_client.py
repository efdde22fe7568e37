"""Shared Redis connection for the catalog cache and the usage store.

Every key is namespaced with ``CACHE_KEY_PREFIX`` so several deployments
can share one database. Values are plain strings; callers own encoding.
"""

from __future__ import annotations

from functools import lru_cache
from urllib.parse import urlsplit, urlunsplit

import redis.asyncio as redis
import structlog
from redis.exceptions import RedisError

from kaap.api.config import get_cache_settings

logger = structlog.get_logger()


def safe_redis_url(url: str) -> str:
    """Drop credentials from a Redis URL so it can be logged."""
    parts = urlsplit(url)
    if "@" not in parts.netloc:
        return url
    host = parts.netloc.rsplit("@", 1)[1]
    return urlunsplit(parts._replace(netloc=f"***@{host}"))


class RedisClient:
    """Pooled async Redis connection with namespaced string reads and writes."""

    def __init__(self, redis_url: str, max_connections: int = 20, key_prefix: str = "kaap:") -> None:
        """Initialize the client without connecting.

        Args:
            redis_url: Redis connection URL
            max_connections: Pool size
            key_prefix: Namespace prepended to every key
        """
        self.redis_url = redis_url
        self.max_connections = max_connections
        self.key_prefix = key_prefix
        self._pool: redis.ConnectionPool | None = None
        self._redis: redis.Redis | None = None

    @property
    def is_connected(self) -> bool:
        return self._redis is not None

    def key(self, *parts: str) -> str:
        """Build a namespaced key, e.g. ``key("catalog", fp)`` -> ``kaap:catalog:fp``."""
        return self.key_prefix + ":".join(parts)

    def _connection(self) -> redis.Redis:
        if self._redis is None:
            raise RuntimeError("Redis not connected. Call connect() first.")
        return self._redis

    async def connect(self) -> None:
        """Open the pool and verify the server answers; no-op when connected."""
        if self._redis is not None:
            return
        self._pool = redis.ConnectionPool.from_url(
            self.redis_url,
            decode_responses=True,
            max_connections=self.max_connections,
        )
        self._redis = redis.Redis(connection_pool=self._pool)
        await self._redis.ping()
        logger.info("redis_connected", url=safe_redis_url(self.redis_url), prefix=self.key_prefix)

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
        if self._pool is not None:
            await self._pool.disconnect()
            self._pool = None
        logger.info("redis_disconnected")

    async def read(self, key: str) -> str | None:
        """Get the string stored under an already-namespaced key."""
        value: str | None = await self._connection().get(key)
        return value

    async def write(self, key: str, value: str, ttl: float | None = None) -> None:
        """Store a string, expiring after ``ttl`` seconds when given.

        Redis expiry has one-second resolution, so shorter TTLs round up
        to one second.
        """
        if ttl is None:
            await self._connection().set(key, value)
        else:
            await self._connection().setex(key, max(int(ttl), 1), value)

    async def ping(self) -> bool:
        """Report whether the server is reachable; False when not connected."""
        if self._redis is None:
            return False
        try:
            await self._redis.ping()
        except RedisError as e:
            logger.warning("redis_ping_failed", error=type(e).__name__)
            return False
        return True


@lru_cache(maxsize=1)
def get_redis() -> RedisClient:
    """Process-wide Redis client built from cache settings."""
    settings = get_cache_settings()
    return RedisClient(
        redis_url=settings.redis_url,
        max_connections=settings.redis_max_connections,
        key_prefix=settings.key_prefix,
    )


async def init_redis() -> RedisClient:
    """Connect the shared client; call from the app lifespan or a CLI session."""
    client = get_redis()
    await client.connect()
    return client


async def close_redis() -> None:
    await get_redis().close()
