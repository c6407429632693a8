"""
Unit tests for the documentation-grounded operation agent.

The LLM returns one JSON operation; nothing it produces is executed as code.
"""

import json

import pytest

from nldb.agents.operation_agent import (
    DocumentOperation,
    OperationAgent,
    extract_operation_json,
    parse_operation,
    validate_filter,
)
from nldb.knowledge import DocChunk
from nldb.models.agent import AgentError, AgentRequest, OperationError
from nldb.prompts import PromptLoader


class StubRAG:
    def __init__(self, chunks):
        self.chunks = chunks
        self.queries = []

    async def retrieve(self, query, k=None):
        self.queries.append((query, k))
        return self.chunks


DOCS = [
    DocChunk(content="query 支持 filter 与 $gt 操作符", source="flexdb/query.md", title="查询文档"),
    DocChunk(content="insert 写入单个文档", source="flexdb/write.md", title="写入文档"),
]


def make_agent(llm, store, chunks=DOCS):
    return OperationAgent(StubRAG(chunks), llm, store, PromptLoader(), top_k=4)


def request(message, env_id="env-1"):
    return AgentRequest(message=message, params={"envId": env_id} if env_id else {})


class TestValidateFilter:
    def test_allows_listed_operators(self):
        where = {"age": {"$gte": 18, "$lt": 60}, "name": "Alice", "tags": {"$in": ["a"]}}
        assert validate_filter(where) is where

    def test_rejects_unknown_operator(self):
        with pytest.raises(ValueError, match=r"\$where"):
            validate_filter({"age": {"$where": "this.age > 1"}})

    def test_rejects_top_level_operator(self):
        with pytest.raises(ValueError):
            validate_filter({"$or": [{"a": 1}, {"b": 2}]})

    def test_plain_nested_object_is_value(self):
        assert validate_filter({"profile": {"city": "上海"}}) == {"profile": {"city": "上海"}}


class TestDocumentOperation:
    def test_defaults(self):
        op = DocumentOperation.model_validate({"operation": "query", "collection": "users"})
        assert op.filter == {}
        assert op.limit == 100
        assert op.order_by == []

    def test_order_by_single_object(self):
        op = DocumentOperation.model_validate(
            {"operation": "query", "collection": "users", "order_by": {"field": "age", "direction": "desc"}}
        )
        assert op.order_by[0].field == "age"
        assert op.order_by[0].direction == "desc"

    @pytest.mark.parametrize(
        "payload",
        [
            {"operation": "drop", "collection": "users"},
            {"operation": "query", "collection": "users; rm -rf"},
            {"operation": "query", "collection": "users", "limit": 5000},
            {"operation": "insert", "collection": "users"},
            {"operation": "update", "collection": "users", "filter": {}, "data": {}},
        ],
    )
    def test_invalid_operations(self, payload):
        with pytest.raises(ValueError):
            DocumentOperation.model_validate(payload)


class TestExtraction:
    def test_fenced_block_preferred(self):
        text = '说明 {"x": 1}\n```json\n{"operation": "count", "collection": "users"}\n```'
        assert extract_operation_json(text) == {"operation": "count", "collection": "users"}

    def test_bare_object(self):
        assert extract_operation_json('好的：{"operation": "count", "collection": "a"}')["collection"] == "a"

    def test_no_json(self):
        with pytest.raises(OperationError):
            extract_operation_json("db.collection('users').get()")

    def test_invalid_operation_is_not_recoverable(self):
        with pytest.raises(OperationError) as exc_info:
            parse_operation('{"operation": "query", "collection": "users", "filter": {"$where": "1"}}')
        assert exc_info.value.recoverable is False


class TestOperationAgent:
    @pytest.mark.asyncio
    async def test_query_operation(self, scripted_llm, document_store):
        llm = scripted_llm(
            [
                '```json\n{"operation": "query", "collection": "users", '
                '"filter": {"age": {"$gt": 18}}, "limit": 10}\n```'
            ]
        )
        agent = make_agent(llm, document_store)

        response = await agent(request("查询年龄大于 18 的用户"))

        assert response.type == "operation_result"
        assert [doc["name"] for doc in response.data] == ["Alice"]
        assert response.metadata["operation"] == "query"
        assert response.metadata["sources"] == ["flexdb/query.md", "flexdb/write.md"]
        assert "查询年龄大于 18 的用户" in llm.prompts[0]
        assert "flexdb/query.md" in llm.prompts[0]
        assert agent.rag.queries == [("查询年龄大于 18 的用户", 4)]

    @pytest.mark.asyncio
    async def test_insert_operation(self, scripted_llm, document_store):
        llm = scripted_llm(['{"operation": "insert", "collection": "users", "data": {"name": "Eve"}}'])
        agent = make_agent(llm, document_store)

        response = await agent(request("新增用户 Eve"))

        assert response.data == {"insertedId": "doc-1", "data": {"name": "Eve"}}
        assert document_store.collections["users"][-1]["name"] == "Eve"

    @pytest.mark.asyncio
    async def test_count_and_update_operations(self, scripted_llm, document_store):
        agent = make_agent(
            scripted_llm(['{"operation": "count", "collection": "users"}']), document_store
        )
        assert (await agent(request("多少用户"))).data == {"count": 2}

        agent = make_agent(
            scripted_llm(
                ['{"operation": "update", "collection": "users", "filter": {"name": "Bob"}, "data": {"age": 18}}']
            ),
            document_store,
        )
        assert (await agent(request("Bob 18 岁了"))).data == {"updatedCount": 1}

    @pytest.mark.asyncio
    async def test_delete_requires_confirmation(self, scripted_llm, document_store):
        llm = scripted_llm(['{"operation": "delete", "collection": "users", "filter": {"age": {"$lt": 18}}}'])
        agent = make_agent(llm, document_store)

        response = await agent(request("删除未成年用户"))

        assert response.type == "confirmation_required"
        assert response.metadata["operation"] == "delete_documents"
        assert response.metadata["table"] == "users"
        assert response.metadata["where"] == {"age": {"$lt": 18}}
        assert response.metadata["envId"] == "env-1"
        assert not any(call[0] == "delete" for call in document_store.calls)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("data", "risk"),
        [
            ({"$unset": {"oldField": ""}}, "删除字段 oldField"),
            ({"$rename": {"oldField": "newField"}}, "重命名字段 oldField → newField"),
        ],
    )
    async def test_destructive_update_requires_confirmation(
        self, scripted_llm, document_store, data, risk
    ):
        payload = {"operation": "update", "collection": "test", "filter": {}, "data": data}
        agent = make_agent(scripted_llm([json.dumps(payload)]), document_store)

        response = await agent(request("清理 test 集合的 oldField"))

        assert response.type == "confirmation_required"
        assert risk in response.message
        assert response.metadata["operation"] == "update_documents"
        assert response.metadata["args"] == {
            "collection": "test",
            "where": {},
            "data": data,
            "env_id": "env-1",
        }
        assert response.metadata["risks"] == [risk]
        assert not any(call[0] == "update" for call in document_store.calls)
        assert all(doc["oldField"] for doc in document_store.collections["test"])

    @pytest.mark.asyncio
    async def test_no_docs(self, scripted_llm, document_store):
        llm = scripted_llm()
        agent = make_agent(llm, document_store, chunks=[])

        response = await agent(request("x"))

        assert response.type == "error"
        assert llm.call_count == 0

    @pytest.mark.asyncio
    async def test_missing_env_raises(self, scripted_llm, document_store):
        agent = make_agent(scripted_llm(), document_store)
        with pytest.raises(OperationError):
            await agent(request("x", env_id=None))

    @pytest.mark.asyncio
    async def test_disallowed_operator_raises(self, scripted_llm, document_store):
        llm = scripted_llm(['{"operation": "query", "collection": "users", "filter": {"a": {"$function": "x"}}}'])
        agent = make_agent(llm, document_store)

        with pytest.raises(AgentError):
            await agent(request("x"))
        assert document_store.calls == []
