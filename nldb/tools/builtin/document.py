"""Built-in document store tools."""

from __future__ import annotations

from typing import Any

from nldb.clients.document_store import BaseDocumentStore, destructive_update
from nldb.tools.base import ToolCategory, ToolContext, tool


def _store(ctx: ToolContext) -> BaseDocumentStore:
    return ctx.service("document_store")


def _require_env(env_id: str | None) -> str:
    if not env_id:
        raise ValueError("环境 ID 未设置，请先选择环境")
    return env_id


def _update_approval(args: dict[str, Any]) -> str | None:
    return destructive_update(args.get("data"))


@tool(
    name="query_collection",
    description=(
        "查询 FlexDB 数据库集合，支持条件筛选、排序、分页。输入 JSON："
        '{"envId": "环境 ID", "collection": "集合名称(必填)", '
        '"where": {"字段": "值" 或 {"$gt": 18}}, "limit": 100, "skip": 0, '
        '"orderBy": {"field": "字段名", "direction": "asc 或 desc"}}'
    ),
    category=ToolCategory.DOCUMENT,
)
async def query_collection(
    collection: str,
    env_id: str | None = None,
    where: dict[str, Any] | None = None,
    limit: int = 100,
    skip: int = 0,
    order_by: dict[str, Any] | list[dict[str, Any]] | None = None,
    ctx: ToolContext | None = None,
) -> dict[str, Any]:
    data = await _store(ctx).query(
        _require_env(env_id), collection, where=where, limit=limit, skip=skip, order_by=order_by
    )
    return {"success": True, "collection": collection, "count": len(data), "data": data}


@tool(
    name="insert_document",
    description=(
        "向 FlexDB 集合中插入一条新文档。输入 JSON："
        '{"envId": "环境 ID", "collection": "集合名称(必填)", "data": {"字段1": "值1"}(必填)}'
    ),
    category=ToolCategory.DOCUMENT,
)
async def insert_document(
    collection: str,
    data: dict[str, Any],
    env_id: str | None = None,
    ctx: ToolContext | None = None,
) -> dict[str, Any]:
    if not data:
        raise ValueError("data 不能为空")
    inserted_id = await _store(ctx).insert(_require_env(env_id), collection, data)
    return {
        "success": True,
        "collection": collection,
        "insertedId": inserted_id,
        "data": data,
        "message": "文档插入成功",
    }


@tool(
    name="update_documents",
    description=(
        "更新 FlexDB 集合中符合条件的所有文档。输入 JSON："
        '{"envId": "环境 ID", "collection": "集合名称(必填)", '
        '"where": {"字段": "值"}(必填，{} 表示全部), "data": {"字段": "新值"}(必填)}。'
        "使用 $unset 删除字段或 $rename 重命名字段需要用户确认后才会执行"
    ),
    category=ToolCategory.DOCUMENT,
    approval_check=_update_approval,
)
async def update_documents(
    collection: str,
    where: dict[str, Any],
    data: dict[str, Any],
    env_id: str | None = None,
    ctx: ToolContext | None = None,
) -> dict[str, Any]:
    if not data:
        raise ValueError("data 不能为空")
    updated = await _store(ctx).update(_require_env(env_id), collection, where, data)
    return {
        "success": True,
        "collection": collection,
        "updatedCount": updated,
        "message": f"成功更新 {updated} 条文档",
    }


@tool(
    name="count_documents",
    description=(
        "统计 FlexDB 集合中符合条件的文档数量。输入 JSON："
        '{"envId": "环境 ID", "collection": "集合名称(必填)", "where": {"字段": "值"}}'
    ),
    category=ToolCategory.DOCUMENT,
)
async def count_documents(
    collection: str,
    env_id: str | None = None,
    where: dict[str, Any] | None = None,
    ctx: ToolContext | None = None,
) -> dict[str, Any]:
    count = await _store(ctx).count(_require_env(env_id), collection, where)
    return {"success": True, "collection": collection, "count": count}
