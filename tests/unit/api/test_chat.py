"""
Unit Tests for Chat and Documentation Endpoints

Requests run through the real pipeline wired with fakes by the container
fixture.
"""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from nldb.api.main import create_app
from nldb.knowledge import RetrievalError


class TestChatEndpoint:
    """Test suite for /api/chat/query."""

    @pytest.fixture
    def client(self, container):
        return TestClient(create_app(container))

    def test_query_returns_rows(self, client):
        response = client.post(
            "/api/chat/query",
            json={"message": "查询 users 表", "context": {"sessionId": "s1"}},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["type"] == "query_result"
        assert data["metadata"]["table"] == "users"
        assert data["metadata"]["rowCount"] == 2
        assert len(data["data"]) == 2

    def test_empty_message(self, client):
        response = client.post("/api/chat/query", json={"message": "   "})

        assert response.status_code == 400
        assert response.json()["detail"] == "消息不能为空"

    def test_missing_message_is_empty(self, client):
        assert client.post("/api/chat/query", json={}).status_code == 400

    def test_user_header_selects_environment(self, client, container, document_store):
        client.post("/api/user/env", json={"envId": "env-header"}, headers={"X-User-Id": "u-9"})

        client.post("/api/chat/query", json={"message": "查询 users 表"}, headers={"X-User-Id": "u-9"})

        assert document_store.calls[-1][1] == "env-header"

    def test_chat_reply(self, client):
        data = client.post("/api/chat/query", json={"message": "你好"}).json()
        assert data["type"] == "chat"
        assert data["suggestions"]

    def test_confirmation_flow(self, client, document_store):
        pending = client.post(
            "/api/chat/query", json={"message": "删除 test 表的 oldField 字段"}
        ).json()
        assert pending["type"] == "confirmation_required"

        response = client.post(
            "/api/chat/confirm",
            json={"operation": pending["metadata"]["operation"], "params": pending["metadata"]},
        )

        assert response.status_code == 200
        assert response.json()["type"] == "success"
        assert all("oldField" not in doc for doc in document_store.collections["test"])

    def test_confirmation_cancelled(self, client, document_store):
        response = client.post(
            "/api/chat/confirm",
            json={"operation": "delete_field", "params": {"table": "test"}, "confirmed": False},
        )

        assert response.json()["type"] == "cancelled"
        assert document_store.calls == []

    def test_confirm_requires_operation(self, client):
        assert client.post("/api/chat/confirm", json={"params": {}}).status_code == 422

    def test_clear_context(self, client, container):
        client.post("/api/chat/query", json={"message": "你好", "context": {"sessionId": "s5"}})

        response = client.delete("/api/chat/context/s5")

        assert response.status_code == 200
        assert response.json()["success"] is True


class TestDocQAEndpoint:
    """Test suite for /api/doc-qa/query."""

    def test_answer(self, container, docs_dir):
        client = TestClient(create_app(container))

        response = client.post("/api/doc-qa/query", json={"question": "如何新增文档？"})

        assert response.status_code == 200
        data = response.json()
        assert data["answer"] == "你好！有什么可以帮你？"
        assert data["sources"]
        assert {"title", "content", "score"} <= set(data["sources"][0])

    def test_empty_question(self, container):
        client = TestClient(create_app(container))
        assert client.post("/api/doc-qa/query", json={"question": ""}).status_code == 400

    def test_retrieval_failure(self, container):
        container.rag.answer = AsyncMock(side_effect=RetrievalError("index offline"))
        client = TestClient(create_app(container))

        response = client.post("/api/doc-qa/query", json={"question": "x"})

        assert response.status_code == 503
        assert "index offline" in response.json()["detail"]
