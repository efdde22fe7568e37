"""Key-value stores for usage totals, budgets, the audit log and custom models.

Values are JSON strings, keyed the way the chat UI keys its local storage.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Protocol

import structlog

from kaap.cache.redis_client import RedisClient

logger = structlog.get_logger()


class KeyValueStore(Protocol):
    """Async string key-value store."""

    async def get(self, key: str) -> str | None:
        """Get a value, or None when the key is absent."""
        ...

    async def set(self, key: str, value: str) -> None:
        """Store a value."""
        ...


class InMemoryStore:
    """Process-local store."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value


class RedisStore:
    """Store backed by Redis strings under the client's namespace."""

    def __init__(self, redis_client: RedisClient) -> None:
        self.redis = redis_client

    async def get(self, key: str) -> str | None:
        return await self.redis.read(self.redis.key(key))

    async def set(self, key: str, value: str) -> None:
        await self.redis.write(self.redis.key(key), value)


class JsonFileStore:
    """Store persisted as one JSON object in a file.

    Used by the CLI so usage survives between invocations.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = asyncio.Lock()

    def _read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("store_file_unreadable", path=str(self.path), error=str(e))
            return {}
        return data if isinstance(data, dict) else {}

    async def get(self, key: str) -> str | None:
        value = self._read().get(key)
        return value if isinstance(value, str) else None

    async def set(self, key: str, value: str) -> None:
        async with self._lock:
            data = self._read()
            data[key] = value
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")
