"""Provider model catalog cache.

Memoizes the list of models visible to an API key. Entries are keyed by
API key and expire after a TTL; they are never evicted otherwise.
Concurrent refreshes for the same key are benign (last writer wins).
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import time
from collections.abc import Callable
from typing import Protocol

import structlog

from .redis_client import RedisClient

logger = structlog.get_logger()


def _key_fingerprint(api_key: str) -> str:
    """Stable, non-reversible cache key for an API key."""
    return hashlib.sha256(api_key.encode()).hexdigest()[:16]


class ModelCatalogCache(Protocol):
    """Capability interface for catalog caches."""

    async def get(self, api_key: str) -> list[str] | None:
        """Return cached model ids, or None on miss/expiry."""
        ...

    async def put(self, api_key: str, models: list[str], ttl: float) -> None:
        """Cache model ids for ``ttl`` seconds."""
        ...


class InMemoryModelCatalogCache:
    """Process-wide in-memory catalog cache."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        """Initialize in-memory cache.

        Args:
            clock: Monotonic time source (seconds)
        """
        self._clock = clock
        self._entries: dict[str, tuple[float, list[str]]] = {}
        self._lock = asyncio.Lock()

    async def get(self, api_key: str) -> list[str] | None:
        entry = self._entries.get(_key_fingerprint(api_key))
        if entry is None:
            return None
        expires_at, models = entry
        if expires_at <= self._clock():
            return None
        return list(models)

    async def put(self, api_key: str, models: list[str], ttl: float) -> None:
        async with self._lock:
            self._entries[_key_fingerprint(api_key)] = (self._clock() + ttl, list(models))
        logger.debug("model_catalog_cached", count=len(models), ttl=ttl)


class RedisModelCatalogCache:
    """Catalog cache shared across processes through Redis."""

    def __init__(self, redis_client: RedisClient) -> None:
        """Initialize Redis-backed cache.

        Args:
            redis_client: Redis client instance
        """
        self._redis = redis_client

    def _key(self, api_key: str) -> str:
        return self._redis.key("catalog", _key_fingerprint(api_key))

    async def get(self, api_key: str) -> list[str] | None:
        data = await self._redis.read(self._key(api_key))
        if data is None:
            return None
        try:
            models = json.loads(data)
        except json.JSONDecodeError:
            logger.warning("model_catalog_corrupt", backend="redis")
            return None
        return [str(model) for model in models] if isinstance(models, list) else None

    async def put(self, api_key: str, models: list[str], ttl: float) -> None:
        await self._redis.write(self._key(api_key), json.dumps(models), ttl=ttl)
        logger.debug("model_catalog_cached", count=len(models), ttl=ttl, backend="redis")
