"""
Storage Adapters

Async key-value stores holding JSON-compatible values:

- MemoryStorage: process-local dict (default)
- FileStorage: one JSON document on disk, rewritten on every change
- RedisStorage: ``redis.asyncio`` with optional key expiry
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from copy import deepcopy
from pathlib import Path
from typing import Any

import redis.asyncio as redis

from nldb.config import StorageSettings

logger = logging.getLogger(__name__)


class StorageAdapter(ABC):
    """Interface shared by every storage backend."""

    @abstractmethod
    async def get(self, key: str) -> Any:
        """Return the stored value or None."""

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """Store a JSON-compatible value."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove a key; missing keys are ignored."""

    @abstractmethod
    async def has(self, key: str) -> bool:
        """Check whether a key exists."""

    @abstractmethod
    async def clear(self) -> None:
        """Remove every key."""

    async def aclose(self) -> None:
        """Release connections held by the backend."""


class MemoryStorage(StorageAdapter):
    def __init__(self) -> None:
        self._store: dict[str, Any] = {}

    async def get(self, key: str) -> Any:
        # Copies keep callers from mutating stored state in place
        return deepcopy(self._store.get(key))

    async def set(self, key: str, value: Any) -> None:
        self._store[key] = deepcopy(value)

    async def delete(self, key: str) -> None:
        self._store.pop(key, None)

    async def has(self, key: str) -> bool:
        return key in self._store

    async def clear(self) -> None:
        self._store.clear()

    def __len__(self) -> int:
        return len(self._store)


class FileStorage(StorageAdapter):
    """JSON file backed storage for single-host deployments."""

    def __init__(self, file_path: str | Path) -> None:
        self.file_path = Path(file_path)
        self._cache: dict[str, Any] = self._load()

    def _load(self) -> dict[str, Any]:
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        if not self.file_path.exists():
            return {}
        try:
            data = json.loads(self.file_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            logger.warning(f"Ignoring corrupt storage file {self.file_path}: {e}")
            return {}
        logger.info(f"Loaded {len(data)} entries from {self.file_path}")
        return data

    def _write(self, snapshot: str) -> None:
        tmp_path = self.file_path.with_suffix(self.file_path.suffix + ".tmp")
        tmp_path.write_text(snapshot, encoding="utf-8")
        tmp_path.replace(self.file_path)

    async def _save(self) -> None:
        snapshot = json.dumps(self._cache, ensure_ascii=False, indent=2)
        await asyncio.to_thread(self._write, snapshot)

    async def get(self, key: str) -> Any:
        return deepcopy(self._cache.get(key))

    async def set(self, key: str, value: Any) -> None:
        self._cache[key] = deepcopy(value)
        await self._save()

    async def delete(self, key: str) -> None:
        if self._cache.pop(key, None) is not None:
            await self._save()

    async def has(self, key: str) -> bool:
        return key in self._cache

    async def clear(self) -> None:
        self._cache.clear()
        await self._save()


class RedisStorage(StorageAdapter):
    """Redis backed storage; values are JSON encoded strings."""

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        ttl_seconds: int | None = None,
        client: redis.Redis | None = None,
    ) -> None:
        self.client = client or redis.from_url(url, decode_responses=True)
        self.ttl_seconds = ttl_seconds

    async def get(self, key: str) -> Any:
        raw = await self.client.get(key)
        return json.loads(raw) if raw is not None else None

    async def set(self, key: str, value: Any) -> None:
        await self.client.set(key, json.dumps(value, ensure_ascii=False), ex=self.ttl_seconds)

    async def delete(self, key: str) -> None:
        await self.client.delete(key)

    async def has(self, key: str) -> bool:
        return bool(await self.client.exists(key))

    async def clear(self) -> None:
        await self.client.flushdb()

    async def aclose(self) -> None:
        await self.client.aclose()


def create_storage(settings: StorageSettings) -> StorageAdapter:
    """Build the backend selected by ``STORAGE_TYPE``."""
    logger.info(f"Using {settings.type} storage", extra={"storage_type": settings.type})
    if settings.type == "file":
        return FileStorage(settings.file_path)
    if settings.type == "redis":
        return RedisStorage(settings.redis_url, ttl_seconds=settings.ttl_seconds)
    return MemoryStorage()
