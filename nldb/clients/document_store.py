"""
Document store (FlexDB) access.

BaseDocumentStore is the interface agents and tools depend on.
CapiDocumentStore implements it with the FlexDB actions of the CAPI gateway,
whose filters and updates are MongoDB-style JSON strings.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any

from nldb.clients.capi import CapiClient, CapiError

logger = logging.getLogger(__name__)

UPDATE_OPERATORS = frozenset({"$set", "$unset", "$rename", "$inc", "$push", "$pull"})
DESTRUCTIVE_UPDATE_OPERATORS = frozenset({"$unset", "$rename"})


def normalize_order_by(order_by: Any) -> list[tuple[str, str]]:
    """Accept {"field", "direction"}, a list of those, or {"field": "asc"} mappings."""
    if not order_by:
        return []
    items = order_by if isinstance(order_by, list) else [order_by]
    normalized: list[tuple[str, str]] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        if "field" in item:
            direction = str(item.get("direction", "asc")).lower()
            normalized.append((item["field"], "desc" if direction == "desc" else "asc"))
            continue
        for key, value in item.items():
            descending = str(value).lower() in ("desc", "-1")
            normalized.append((key, "desc" if descending else "asc"))
    return normalized


def as_update_document(data: dict[str, Any]) -> dict[str, Any]:
    """Wrap plain field values in $set unless the dict already uses update operators."""
    if data and all(key in UPDATE_OPERATORS for key in data):
        return data
    return {"$set": data}


def destructive_update(data: dict[str, Any] | None) -> str | None:
    """Describe the fields an update would remove or rename, or None for a plain update."""
    changes = []
    for operator in sorted(DESTRUCTIVE_UPDATE_OPERATORS & set(data or {})):
        fields = data[operator]
        if isinstance(fields, dict):
            for field, target in fields.items():
                if operator == "$rename":
                    changes.append(f"重命名字段 {field} → {target}")
                else:
                    changes.append(f"删除字段 {field}")
        else:
            changes.append(f"{operator} 操作")
    return "、".join(changes) or None


class BaseDocumentStore(ABC):
    """Collection-level CRUD used by the document tools and agents."""

    @abstractmethod
    async def query(
        self,
        env_id: str,
        collection: str,
        where: dict[str, Any] | None = None,
        limit: int = 100,
        skip: int = 0,
        order_by: Any = None,
    ) -> list[dict[str, Any]]:
        """Return matching documents."""

    @abstractmethod
    async def insert(self, env_id: str, collection: str, data: dict[str, Any]) -> str | None:
        """Insert one document and return its id."""

    @abstractmethod
    async def update(
        self, env_id: str, collection: str, where: dict[str, Any], data: dict[str, Any]
    ) -> int:
        """Update every matching document; ``data`` is plain values or an update document."""

    @abstractmethod
    async def delete(self, env_id: str, collection: str, where: dict[str, Any]) -> int:
        """Delete every matching document."""

    @abstractmethod
    async def count(self, env_id: str, collection: str, where: dict[str, Any] | None = None) -> int:
        """Count matching documents."""


class CapiDocumentStore(BaseDocumentStore):
    """FlexDB over the CAPI gateway."""

    SERVICE = "flexdb"

    def __init__(self, capi: CapiClient):
        self.capi = capi

    async def _call(self, action: str, env_id: str, collection: str, **params: Any) -> dict:
        data = {"Tag": env_id, "TableName": collection, **params}
        logger.info(
            f"FlexDB {action}",
            extra={"env_id": env_id, "collection": collection, "action": action},
        )
        result = await self.capi.request(self.SERVICE, action, data)
        if not isinstance(result, dict):
            raise CapiError("INVALID_RESPONSE", f"Unexpected {action} result: {result!r}")
        return result

    async def query(self, env_id, collection, where=None, limit=100, skip=0, order_by=None):
        params: dict[str, Any] = {
            "MgoQuery": json.dumps(where or {}, ensure_ascii=False),
            "MgoLimit": limit,
            "MgoOffset": skip,
        }
        sort = normalize_order_by(order_by)
        if sort:
            params["MgoSort"] = json.dumps(
                {field: -1 if direction == "desc" else 1 for field, direction in sort}
            )
        result = await self._call("Query", env_id, collection, **params)
        return [json.loads(item) if isinstance(item, str) else item for item in result.get("Data", [])]

    async def insert(self, env_id, collection, data):
        result = await self._call(
            "PutItem", env_id, collection, MgoDocs=[json.dumps(data, ensure_ascii=False)]
        )
        inserted = result.get("InsertedIds") or []
        return inserted[0] if inserted else None

    async def update(self, env_id, collection, where, data):
        result = await self._call(
            "UpdateItem",
            env_id,
            collection,
            MgoQuery=json.dumps(where or {}, ensure_ascii=False),
            MgoUpdate=json.dumps(as_update_document(data), ensure_ascii=False),
            MgoIsMulti=True,
        )
        return int(result.get("ModifiedNum", result.get("UpdatedNum", 0)) or 0)

    async def delete(self, env_id, collection, where):
        result = await self._call(
            "DeleteItem",
            env_id,
            collection,
            MgoQuery=json.dumps(where or {}, ensure_ascii=False),
            MgoIsMulti=True,
        )
        return int(result.get("Deleted", 0) or 0)

    async def count(self, env_id, collection, where=None):
        result = await self._call(
            "Count", env_id, collection, MgoQuery=json.dumps(where or {}, ensure_ascii=False)
        )
        return int(result.get("Count", 0) or 0)
