"""Tests for the FlexDB document store over the gateway."""

import json

import httpx
import pytest

from nldb.clients.capi import AuthSession, CapiClient, CapiError
from nldb.clients.document_store import (
    CapiDocumentStore,
    as_update_document,
    normalize_order_by,
)
from nldb.config import CloudBaseSettings


class RecordingGateway:
    """MockTransport handler returning queued results and keeping request bodies."""

    def __init__(self, *results):
        self.results = list(results)
        self.bodies = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"code": "NORMAL", "result": self.results.pop(0)})


def make_store(gateway):
    capi = CapiClient(
        CloudBaseSettings(),
        AuthSession(cookie="skey=abc"),
        httpx.AsyncClient(transport=httpx.MockTransport(gateway)),
    )
    return CapiDocumentStore(capi)


class TestHelpers:
    def test_normalize_order_by_field_direction(self):
        assert normalize_order_by({"field": "age", "direction": "DESC"}) == [("age", "desc")]

    def test_normalize_order_by_mapping_and_list(self):
        assert normalize_order_by([{"age": -1}, {"name": "asc"}]) == [
            ("age", "desc"),
            ("name", "asc"),
        ]

    def test_normalize_order_by_empty(self):
        assert normalize_order_by(None) == []
        assert normalize_order_by([]) == []

    def test_as_update_document_wraps_plain_values(self):
        assert as_update_document({"age": 18}) == {"$set": {"age": 18}}

    def test_as_update_document_keeps_operators(self):
        update = {"$unset": {"old": ""}, "$set": {"new": 1}}
        assert as_update_document(update) is update


class TestCapiDocumentStore:
    @pytest.mark.asyncio
    async def test_query_encodes_filter_and_decodes_rows(self):
        gateway = RecordingGateway({"Data": ['{"_id": "1", "name": "Alice"}', {"_id": "2"}]})
        store = make_store(gateway)

        docs = await store.query(
            "env-1", "users", where={"age": {"$gt": 18}}, limit=10, skip=5,
            order_by={"field": "age", "direction": "desc"},
        )

        assert docs == [{"_id": "1", "name": "Alice"}, {"_id": "2"}]
        param = gateway.bodies[0]["actionParam"]
        assert gateway.bodies[0]["serviceType"] == "flexdb"
        assert gateway.bodies[0]["actionName"] == "Query"
        assert param["Tag"] == "env-1"
        assert param["TableName"] == "users"
        assert json.loads(param["MgoQuery"]) == {"age": {"$gt": 18}}
        assert param["MgoLimit"] == 10
        assert param["MgoOffset"] == 5
        assert json.loads(param["MgoSort"]) == {"age": -1}

    @pytest.mark.asyncio
    async def test_insert_returns_first_id(self):
        gateway = RecordingGateway({"InsertedIds": ["abc"]})
        store = make_store(gateway)

        inserted = await store.insert("env-1", "users", {"name": "张三"})

        assert inserted == "abc"
        assert gateway.bodies[0]["actionName"] == "PutItem"
        assert json.loads(gateway.bodies[0]["actionParam"]["MgoDocs"][0]) == {"name": "张三"}

    @pytest.mark.asyncio
    async def test_update_wraps_set_and_is_multi(self):
        gateway = RecordingGateway({"ModifiedNum": 4})
        store = make_store(gateway)

        updated = await store.update("env-1", "users", {}, {"vip": True})

        assert updated == 4
        param = gateway.bodies[0]["actionParam"]
        assert json.loads(param["MgoUpdate"]) == {"$set": {"vip": True}}
        assert param["MgoIsMulti"] is True

    @pytest.mark.asyncio
    async def test_update_reads_updated_num(self):
        store = make_store(RecordingGateway({"UpdatedNum": 2}))
        assert await store.update("env-1", "users", {}, {"$set": {"a": 1}}) == 2

    @pytest.mark.asyncio
    async def test_delete_and_count(self):
        gateway = RecordingGateway({"Deleted": 3}, {"Count": 7})
        store = make_store(gateway)

        assert await store.delete("env-1", "users", {"age": {"$lt": 18}}) == 3
        assert await store.count("env-1", "users") == 7
        assert [body["actionName"] for body in gateway.bodies] == ["DeleteItem", "Count"]
        assert json.loads(gateway.bodies[1]["actionParam"]["MgoQuery"]) == {}

    @pytest.mark.asyncio
    async def test_unexpected_result_raises(self):
        store = make_store(RecordingGateway(None))
        with pytest.raises(CapiError) as exc_info:
            await store.count("env-1", "users")
        assert exc_info.value.code == "INVALID_RESPONSE"
