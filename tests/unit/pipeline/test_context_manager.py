"""Unit tests for the conversation ContextManager."""

import pytest

from nldb.models.agent import AgentResponse, IntentResult, IntentType
from nldb.pipeline.context import ContextManager
from nldb.storage import MemoryStorage, UserPreferenceStore


def intent(params=None, intent_type=IntentType.QUERY_DATABASE):
    return IntentResult(type=intent_type, confidence=0.9, params=params or {})


def reply(message="ok"):
    return AgentResponse(type="chat", message=message)


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def manager(storage):
    return ContextManager(
        storage,
        preferences=UserPreferenceStore(storage),
        default_env_id="env-default",
    )


class TestSave:
    @pytest.mark.asyncio
    async def test_history_is_capped(self, manager, storage):
        for i in range(12):
            await manager.save("s1", f"message {i}", intent(), reply())

        history = await manager.get_history("s1")
        assert len(history) == 10
        assert history[0].message == "message 2"
        assert history[-1].message == "message 11"
        assert len(await storage.get("context:s1")) == 10

    @pytest.mark.asyncio
    async def test_entry_round_trip(self, manager):
        await manager.save("s1", "查询 users 表", intent({"table": "users"}), reply("共 2 条"))

        entry = (await manager.get_history("s1"))[0]
        assert entry.intent.type == IntentType.QUERY_DATABASE
        assert entry.intent.params == {"table": "users"}
        assert entry.result.message == "共 2 条"

    @pytest.mark.asyncio
    async def test_clear(self, manager):
        await manager.save("s1", "x", None, None)
        await manager.clear("s1")
        assert await manager.get_history("s1") == []


class TestEnrich:
    @pytest.mark.asyncio
    async def test_defaults(self, manager):
        context = await manager.enrich()

        assert context["sessionId"] == "default"
        assert context["envId"] == "env-default"
        assert context["history"] == []
        assert "timestamp" in context
        assert "lastQuery" not in context

    @pytest.mark.asyncio
    async def test_input_is_not_mutated(self, manager):
        raw = {"sessionId": "s1"}
        await manager.enrich(raw)
        assert raw == {"sessionId": "s1"}

    @pytest.mark.asyncio
    async def test_window_of_recent_entries(self, manager):
        for i in range(8):
            await manager.save("s1", f"message {i}", intent(), reply())

        context = await manager.enrich({"sessionId": "s1"})

        assert [entry["message"] for entry in context["history"]] == [
            f"message {i}" for i in range(3, 8)
        ]
        assert context["lastQuery"] == "message 7"

    @pytest.mark.asyncio
    async def test_last_table_and_db_type(self, manager):
        await manager.save("s1", "查询 mysql orders 表", intent({"table": "orders", "dbType": "mysql"}), reply())
        await manager.save("s1", "你好", intent(intent_type=IntentType.GENERAL_CHAT), reply())

        context = await manager.enrich({"sessionId": "s1"})

        assert context["lastTable"] == "orders"
        assert context["lastDbType"] == "mysql"

    @pytest.mark.asyncio
    async def test_explicit_last_table_wins(self, manager):
        await manager.save("s1", "x", intent({"table": "orders"}), reply())
        context = await manager.enrich({"sessionId": "s1", "lastTable": "users"})
        assert context["lastTable"] == "users"

    @pytest.mark.asyncio
    async def test_env_from_user_preference(self, manager):
        await manager.preferences.set_env("u1", "env-pref")

        context = await manager.enrich({}, user_id="u1")

        assert context["envId"] == "env-pref"
        assert context["userId"] == "u1"

    @pytest.mark.asyncio
    async def test_explicit_env_wins(self, manager):
        await manager.preferences.set_env("u1", "env-pref")
        context = await manager.enrich({"envId": "env-explicit"}, user_id="u1")
        assert context["envId"] == "env-explicit"

    @pytest.mark.asyncio
    async def test_no_env_anywhere(self, storage):
        manager = ContextManager(storage)
        context = await manager.enrich()
        assert context["envId"] == ""
