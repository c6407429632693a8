"""Unit tests for the storage backends."""

import json
from unittest.mock import AsyncMock

import pytest

from nldb.config import StorageSettings
from nldb.storage import FileStorage, MemoryStorage, RedisStorage, create_storage


class TestMemoryStorage:
    @pytest.mark.asyncio
    async def test_set_get_delete(self):
        storage = MemoryStorage()

        await storage.set("a", {"x": [1, 2]})
        assert await storage.get("a") == {"x": [1, 2]}
        assert await storage.has("a")

        await storage.delete("a")
        assert await storage.get("a") is None
        assert not await storage.has("a")
        await storage.delete("a")

    @pytest.mark.asyncio
    async def test_values_are_copied(self):
        storage = MemoryStorage()
        value = {"history": []}
        await storage.set("k", value)

        value["history"].append(1)
        fetched = await storage.get("k")
        fetched["history"].append(2)

        assert await storage.get("k") == {"history": []}

    @pytest.mark.asyncio
    async def test_clear(self):
        storage = MemoryStorage()
        await storage.set("a", 1)
        await storage.set("b", 2)
        await storage.clear()
        assert len(storage) == 0


class TestFileStorage:
    @pytest.mark.asyncio
    async def test_persists_across_instances(self, tmp_path):
        path = tmp_path / "data" / "storage.json"
        storage = FileStorage(path)

        await storage.set("user:u1:env", "env-1")
        await storage.set("context:s1", {"history": [{"message": "你好"}]})

        reloaded = FileStorage(path)
        assert await reloaded.get("user:u1:env") == "env-1"
        assert await reloaded.get("context:s1") == {"history": [{"message": "你好"}]}
        assert "你好" in path.read_text(encoding="utf-8")
        assert not path.with_suffix(".json.tmp").exists()

    @pytest.mark.asyncio
    async def test_delete_and_clear_are_written(self, tmp_path):
        path = tmp_path / "storage.json"
        storage = FileStorage(path)
        await storage.set("a", 1)
        await storage.set("b", 2)

        await storage.delete("a")
        assert json.loads(path.read_text(encoding="utf-8")) == {"b": 2}

        await storage.clear()
        assert json.loads(path.read_text(encoding="utf-8")) == {}

    def test_corrupt_file_starts_empty(self, tmp_path):
        path = tmp_path / "storage.json"
        path.write_text("{not json", encoding="utf-8")

        storage = FileStorage(path)

        assert storage._cache == {}


class TestRedisStorage:
    @pytest.fixture
    def client(self):
        client = AsyncMock()
        client.get.return_value = None
        client.exists.return_value = 0
        return client

    @pytest.mark.asyncio
    async def test_set_encodes_json_with_ttl(self, client):
        storage = RedisStorage(client=client, ttl_seconds=600)

        await storage.set("k", {"name": "张三"})

        client.set.assert_awaited_once_with("k", '{"name": "张三"}', ex=600)

    @pytest.mark.asyncio
    async def test_get_decodes_json(self, client):
        client.get.return_value = '{"a": 1}'
        storage = RedisStorage(client=client)

        assert await storage.get("k") == {"a": 1}

    @pytest.mark.asyncio
    async def test_missing_key(self, client):
        storage = RedisStorage(client=client)
        assert await storage.get("missing") is None
        assert await storage.has("missing") is False

    @pytest.mark.asyncio
    async def test_delete_clear_close(self, client):
        storage = RedisStorage(client=client)

        await storage.delete("k")
        await storage.clear()
        await storage.aclose()

        client.delete.assert_awaited_once_with("k")
        client.flushdb.assert_awaited_once()
        client.aclose.assert_awaited_once()


class TestCreateStorage:
    def test_memory_default(self):
        assert isinstance(create_storage(StorageSettings()), MemoryStorage)

    def test_file(self, tmp_path):
        storage = create_storage(StorageSettings(type="file", file_path=tmp_path / "s.json"))
        assert isinstance(storage, FileStorage)
        assert storage.file_path == tmp_path / "s.json"

    def test_redis(self):
        storage = create_storage(StorageSettings(type="redis", redis_url="redis://cache:6379/1", ttl_seconds=60))
        assert isinstance(storage, RedisStorage)
        assert storage.ttl_seconds == 60
