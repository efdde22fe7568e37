"""Caching layer."""

from .catalog import InMemoryModelCatalogCache, ModelCatalogCache, RedisModelCatalogCache
from .redis_client import RedisClient, close_redis, get_redis, init_redis

__all__ = [
    "ModelCatalogCache",
    "InMemoryModelCatalogCache",
    "RedisModelCatalogCache",
    "RedisClient",
    "get_redis",
    "init_redis",
    "close_redis",
]
