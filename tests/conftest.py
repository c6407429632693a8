"""
Pytest configuration and shared fixtures.

This module provides fakes for the LLM, the document store, the MySQL
client and the embedding function, so no test needs network access.
"""

import copy
import hashlib
import logging
import math
from collections.abc import AsyncIterator
from typing import Any

import httpx
import pytest

from nldb.api.container import build_container
from nldb.clients.document_store import BaseDocumentStore, as_update_document
from nldb.clients.mysql import SqlResult
from nldb.config import clear_settings_cache, get_settings
from nldb.llm.base import BaseLLMProvider
from nldb.llm.models import LLMRequest, LLMResponse, LLMStreamChunk, ModelInfo
from nldb.storage import MemoryStorage

TEST_API_KEY = "sk-test-key-1234567890-abcdefghijklmnop"

# ============================================================================
# Pytest Configuration
# ============================================================================


def pytest_addoption(parser):
    """Add custom command line options."""
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run integration tests (requires API keys and a cloud environment)",
    )


def pytest_configure(config):
    """Configure pytest with custom markers and settings."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test (may require external services)"
    )
    config.addinivalue_line("markers", "slow: mark test as slow (takes more than 1 second)")


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless explicitly enabled."""
    if config.getoption("--run-integration"):
        return
    skip_integration = pytest.mark.skip(
        reason="Integration tests disabled (use --run-integration to enable)."
    )
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


# ============================================================================
# Settings
# ============================================================================


@pytest.fixture(autouse=True)
def test_environment(monkeypatch, tmp_path):
    """Isolate every test from the developer's .env and cached settings."""
    monkeypatch.setenv("NLDB_ENV_SOURCE", "environment")
    monkeypatch.setenv("LLM_OPENAI_API_KEY", TEST_API_KEY)
    monkeypatch.delenv("TCB_ENV_ID", raising=False)
    monkeypatch.delenv("TCB_COOKIE", raising=False)
    monkeypatch.setenv("DOCS_PATH", str(tmp_path / "docs"))
    monkeypatch.setenv("DOCS_CACHE_DIR", str(tmp_path / "vector_cache"))
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def disable_logging():
    """Disable logging for tests that generate excessive logs."""
    logging.disable(logging.CRITICAL)
    yield
    logging.disable(logging.NOTSET)


# ============================================================================
# Fakes
# ============================================================================


class ScriptedLLM(BaseLLMProvider):
    """
    LLM returning canned responses in order.

    Each response is a string or an exception instance to raise. The last
    response repeats once the script is exhausted. Rendered prompts are kept
    in ``prompts`` for assertions.
    """

    def __init__(self, responses: list[Any] | None = None):
        super().__init__(provider_name="scripted")
        self.responses = list(responses or ["Final Answer: ok"])
        self.prompts: list[str] = []
        self.requests: list[LLMRequest] = []

    async def generate(self, request: LLMRequest) -> LLMResponse:
        self.requests.append(request)
        self.prompts.append(request.messages[-1].content)
        index = min(len(self.prompts) - 1, len(self.responses) - 1)
        response = self.responses[index]
        if isinstance(response, Exception):
            raise response
        return LLMResponse(content=response, model="scripted", provider="scripted")

    async def stream(self, request: LLMRequest) -> AsyncIterator[LLMStreamChunk]:
        response = await self.generate(request)
        yield LLMStreamChunk(content=response.content, finish_reason="stop")

    def count_tokens(self, text: str) -> int:
        return len(text.split())

    def get_model_info(self, model_name: str | None = None) -> ModelInfo:
        return ModelInfo(name="scripted", provider="scripted", context_window=8192, max_output=2048)

    @property
    def call_count(self) -> int:
        return len(self.prompts)


def _matches(document: dict[str, Any], where: dict[str, Any] | None) -> bool:
    for field, condition in (where or {}).items():
        if isinstance(condition, dict) and "$exists" in condition:
            if (field in document) != bool(condition["$exists"]):
                return False
        elif isinstance(condition, dict) and "$gt" in condition:
            if not (field in document and document[field] > condition["$gt"]):
                return False
        elif document.get(field) != condition:
            return False
    return True


class FakeDocumentStore(BaseDocumentStore):
    """In-memory document store supporting equality, $exists and $gt filters."""

    def __init__(self, collections: dict[str, list[dict[str, Any]]] | None = None):
        self.collections = copy.deepcopy(collections or {})
        self.calls: list[tuple[str, str, str, dict[str, Any]]] = []
        self._next_id = 1

    async def query(self, env_id, collection, where=None, limit=100, skip=0, order_by=None):
        self.calls.append(("query", env_id, collection, {"where": where, "limit": limit}))
        docs = [doc for doc in self.collections.get(collection, []) if _matches(doc, where)]
        return copy.deepcopy(docs[skip : skip + limit])

    async def insert(self, env_id, collection, data):
        self.calls.append(("insert", env_id, collection, {"data": data}))
        doc_id = f"doc-{self._next_id}"
        self._next_id += 1
        self.collections.setdefault(collection, []).append({"_id": doc_id, **data})
        return doc_id

    async def update(self, env_id, collection, where, data):
        self.calls.append(("update", env_id, collection, {"where": where, "data": data}))
        updated = 0
        for doc in self.collections.get(collection, []):
            if not _matches(doc, where):
                continue
            updated += 1
            for operator, fields in as_update_document(data).items():
                for field, value in fields.items():
                    if operator == "$set":
                        doc[field] = value
                    elif operator == "$unset":
                        doc.pop(field, None)
                    elif operator == "$rename":
                        doc[value] = doc.pop(field)
        return updated

    async def delete(self, env_id, collection, where):
        self.calls.append(("delete", env_id, collection, {"where": where}))
        docs = self.collections.get(collection, [])
        kept = [doc for doc in docs if not _matches(doc, where)]
        self.collections[collection] = kept
        return len(docs) - len(kept)

    async def count(self, env_id, collection, where=None):
        self.calls.append(("count", env_id, collection, {"where": where}))
        return len([doc for doc in self.collections.get(collection, []) if _matches(doc, where)])


class FakeMySQL:
    """Stand-in for MySQLClient recording every statement."""

    def __init__(self, result: SqlResult | None = None, error: Exception | None = None):
        self.result = result or SqlResult(message="SQL 执行成功", affected_rows=1)
        self.error = error
        self.statements: list[tuple[str, str]] = []

    async def run_sql(self, env_id, sql, instance_id="default", schema=None):
        self.statements.append((env_id, sql))
        if self.error is not None:
            raise self.error
        return self.result


def fake_embedding(texts: list[str]) -> list[list[float]]:
    """Deterministic bag-of-characters embedding, L2 normalized."""
    vectors = []
    for text in texts:
        vector = [0.0] * 64
        for char in text.lower():
            if char.isspace():
                continue
            bucket = int(hashlib.md5(char.encode()).hexdigest(), 16) % 64
            vector[bucket] += 1.0
        norm = math.sqrt(sum(value * value for value in vector)) or 1.0
        vectors.append([value / norm for value in vector])
    return vectors


@pytest.fixture
def scripted_llm():
    """Factory for ScriptedLLM instances."""
    return ScriptedLLM


@pytest.fixture
def embedding_function():
    return fake_embedding


@pytest.fixture
def fake_mysql():
    """Factory for FakeMySQL instances."""
    return FakeMySQL


@pytest.fixture
def document_store():
    return FakeDocumentStore(
        {
            "users": [
                {"_id": "u1", "name": "Alice", "age": 30},
                {"_id": "u2", "name": "Bob", "age": 17},
            ],
            "test": [{"_id": "t1", "oldField": "x"}, {"_id": "t2", "oldField": "y"}],
        }
    )


@pytest.fixture
def mysql_client():
    return FakeMySQL(
        SqlResult(
            columns=[{"name": "id"}, {"name": "name"}],
            column_names=["id", "name"],
            rows=[[1, "Alice"], [2, "Bob"], [3, "Carol"], [4, "Dave"]],
        )
    )


@pytest.fixture
def docs_dir(tmp_path):
    """Small Markdown corpus matching the DOCS_PATH set by test_environment."""
    root = tmp_path / "docs"
    (root / "flexdb").mkdir(parents=True)
    (root / "flexdb" / "query.md").write_text(
        "# 查询文档\n\n使用 query 操作查询集合，filter 支持 $gt、$in 等操作符。\n",
        encoding="utf-8",
    )
    (root / "flexdb" / "write.md").write_text(
        "# 写入文档\n\n使用 insert 新增文档，使用 update 和 $set 更新字段。\n",
        encoding="utf-8",
    )
    return root


# ============================================================================
# Service container
# ============================================================================


@pytest.fixture
def settings(monkeypatch):
    """Rules-only classification, direct agents and a default environment."""
    monkeypatch.setenv("CLASSIFIER_MODE", "rules")
    monkeypatch.setenv("AGENT_USE_TOOL_AGENT", "false")
    monkeypatch.setenv("AGENT_USE_MYSQL_AGENT", "false")
    monkeypatch.setenv("TCB_ENV_ID", "env-test")
    clear_settings_cache()
    return get_settings()


@pytest.fixture
def capi_transport():
    """MockTransport answering every gateway call with an empty success payload."""
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"code": "NORMAL", "result": {}})

    transport = httpx.MockTransport(handler)
    transport.requests = requests
    return transport


@pytest.fixture
def container(settings, document_store, mysql_client, capi_transport):
    """Container wired with fakes; the agent LLM answers every prompt with a greeting."""
    return build_container(
        settings,
        llm=ScriptedLLM(["你好！有什么可以帮你？"]),
        embedding_function=fake_embedding,
        document_store=document_store,
        mysql=mysql_client,
        storage=MemoryStorage(),
        http_client=httpx.AsyncClient(transport=capi_transport),
    )
