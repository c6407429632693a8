"""
Field Mutator Agent

Schema changes on a single field. Adding a field runs immediately;
renaming, retyping and deleting a field come back as confirmation
requests and only run through confirm_and_execute().
"""

import logging
from typing import Any

from nldb.agents.base import BaseAgent
from nldb.clients.capi import CapiError
from nldb.clients.document_store import BaseDocumentStore
from nldb.clients.mysql import MySQLClient, column_type, quote_identifier, sql_literal
from nldb.models.agent import AgentRequest, AgentResponse, FieldMutation

logger = logging.getLogger(__name__)

CONFIRM_OPERATIONS = {
    "rename": "rename_field",
    "change_type": "change_field_type",
    "delete_field": "delete_field",
}

RISKS = {
    "rename_field": ["可能影响正在运行的应用", "需要更新所有引用该字段的代码"],
    "change_field_type": [
        "可能导致数据类型转换失败",
        "可能丢失精度或数据",
        "需要检查现有数据兼容性",
    ],
    "delete_field": ["字段中的数据将被永久删除", "需要更新所有引用该字段的代码"],
}


def _infer_column_type(value: Any) -> str:
    if isinstance(value, bool):
        return "TINYINT(1)"
    if isinstance(value, int):
        return "INT"
    if isinstance(value, float):
        return "DOUBLE"
    return "VARCHAR(255)"


class FieldMutatorAgent(BaseAgent):
    """Add, rename, retype or delete a field on FlexDB collections and MySQL tables."""

    def __init__(self, store: BaseDocumentStore, mysql: MySQLClient):
        super().__init__(name="FieldMutatorAgent")
        self.store = store
        self.mysql = mysql

    async def execute(self, request: AgentRequest) -> AgentResponse:
        mutation = FieldMutation.from_params(request.params)
        mutation.table = mutation.table or request.context.get("lastTable") or ""
        mutation.env_id = request.env_id
        if "dbType" not in request.params and request.context.get("lastDbType"):
            mutation.db_type = request.context["lastDbType"]

        if not mutation.table or not mutation.field:
            return AgentResponse(
                type="missing_params",
                message='请告诉我要修改哪个表的哪个字段？例如："把 users 表的 age 字段改成 bigint"',
                suggestions=["修改 users 表的 age 字段", "查看表结构"],
            )

        if mutation.action == "add_field":
            return await self._add_field(mutation)
        if mutation.action == "rename" and mutation.new_name:
            return self._confirmation(
                mutation,
                "rename_field",
                f"⚠️ 准备将 {mutation.table} 表的 {mutation.field} 字段重命名为 "
                f"{mutation.new_name}。此操作不可撤销，是否继续？",
                ["确认执行", "取消操作", "先查看影响范围"],
            )
        if mutation.action == "change_type" and mutation.new_type:
            return self._confirmation(
                mutation,
                "change_field_type",
                f"⚠️ 准备将 {mutation.table} 表的 {mutation.field} 字段类型修改为 "
                f"{mutation.new_type}。此操作可能导致数据丢失，是否继续？",
                ["确认执行", "取消操作", "先备份数据"],
            )
        if mutation.action == "delete_field":
            return self._confirmation(
                mutation,
                "delete_field",
                f"⚠️ 准备删除 {mutation.table} 表的 {mutation.field} 字段，"
                "字段数据将无法恢复，是否继续？",
                ["确认执行", "取消操作", "先备份数据"],
            )

        field = mutation.field
        return AgentResponse(
            type="clarification_needed",
            message=f"我理解你想修改 {mutation.table} 表的 {field} 字段，但需要更明确的操作。你是想：",
            suggestions=[f"重命名 {field} 字段", f"修改 {field} 的类型", f"删除 {field} 字段"],
        )

    def _confirmation(
        self,
        mutation: FieldMutation,
        operation: str,
        message: str,
        suggestions: list[str],
    ) -> AgentResponse:
        metadata: dict[str, Any] = {
            "operation": operation,
            "table": mutation.table,
            "field": mutation.field,
            "dbType": mutation.db_type,
            "envId": mutation.env_id,
            "risks": RISKS[operation],
        }
        if mutation.new_name:
            metadata["newName"] = mutation.new_name
        if mutation.new_type:
            metadata["newType"] = mutation.new_type
        return AgentResponse(
            type="confirmation_required",
            message=message,
            metadata=metadata,
            suggestions=suggestions,
        )

    async def _add_field(self, mutation: FieldMutation) -> AgentResponse:
        if not mutation.env_id:
            return AgentResponse(
                type="missing_params",
                message="请先配置环境 ID (envId)",
                suggestions=["配置环境 ID"],
            )
        table, field, default = mutation.table, mutation.field, mutation.default_value

        try:
            if mutation.db_type == "mysql":
                col_type = (
                    column_type(mutation.new_type)
                    if mutation.new_type
                    else _infer_column_type(default)
                )
                sql = (
                    f"ALTER TABLE {quote_identifier(table)} ADD COLUMN "
                    f"{quote_identifier(field)} {col_type}"
                )
                if default is not None:
                    sql += f" DEFAULT {sql_literal(default)}"
                await self.mysql.run_sql(mutation.env_id, sql)
                detail = f"列类型 {col_type}"
            else:
                updated = await self.store.update(
                    mutation.env_id,
                    table,
                    {field: {"$exists": False}},
                    {"$set": {field: default}},
                )
                detail = f"已为 {updated} 条文档设置默认值"
        except (CapiError, ValueError) as e:
            logger.error("Add field failed", extra={"table": table, "field": field, "error": str(e)})
            return AgentResponse(
                type="error",
                message=f"修改失败: {e}",
                suggestions=["检查权限", "查看文档"],
            )

        return AgentResponse(
            type="success",
            message=f"✅ 已为 {table} 表添加字段 {field}（默认值: {default}），{detail}",
            metadata={"operation": "add_field", "table": table, "field": field, "dbType": mutation.db_type},
            suggestions=[f"查询 {table} 表", "查看表结构"],
        )

    async def confirm_and_execute(self, operation: str, params: dict[str, Any]) -> AgentResponse:
        """
        Run a mutation the user has confirmed.

        ``params`` is the metadata of the confirmation response.
        """
        table = params.get("table") or ""
        field = params.get("field") or params.get("oldName") or ""
        env_id = params.get("envId")
        db_type = params.get("dbType") or "flexdb"

        if operation not in RISKS:
            return AgentResponse(type="error", message=f"未知操作: {operation}")
        if not env_id or not table or not field:
            return AgentResponse(
                type="missing_params",
                message="缺少执行所需的参数（envId、table、field）",
                suggestions=["重新发起操作"],
            )

        logger.info(
            "Executing confirmed field operation",
            extra={"operation": operation, "table": table, "field": field, "db_type": db_type},
        )
        try:
            if db_type == "mysql":
                return await self._confirm_mysql(operation, env_id, table, field, params)
            return await self._confirm_document(operation, env_id, table, field, params)
        except (CapiError, ValueError) as e:
            return AgentResponse(type="error", message=f"执行失败: {e}")

    async def _confirm_document(
        self, operation: str, env_id: str, table: str, field: str, params: dict[str, Any]
    ) -> AgentResponse:
        if operation == "change_field_type":
            return AgentResponse(
                type="not_supported",
                message="FlexDB 是无模式的文档数据库，字段没有固定类型，无法直接修改字段类型",
                suggestions=["在应用中转换数据后重新写入", "查看文档"],
            )

        exists = {field: {"$exists": True}}
        if operation == "rename_field":
            new_name = params.get("newName")
            if not new_name:
                return AgentResponse(type="missing_params", message="缺少新字段名 newName")
            updated = await self.store.update(env_id, table, exists, {"$rename": {field: new_name}})
            return AgentResponse(
                type="success",
                message=f"✅ 已成功将 {table} 表的 {field} 字段重命名为 {new_name}（{updated} 条文档）",
                data={"updatedCount": updated},
                suggestions=["查看表结构", "测试应用"],
            )

        updated = await self.store.update(env_id, table, exists, {"$unset": {field: ""}})
        return AgentResponse(
            type="success",
            message=f"✅ 已删除 {table} 表的 {field} 字段（{updated} 条文档）",
            data={"updatedCount": updated},
            suggestions=[f"查询 {table} 表", "查看表结构"],
        )

    async def _confirm_mysql(
        self, operation: str, env_id: str, table: str, field: str, params: dict[str, Any]
    ) -> AgentResponse:
        target = f"ALTER TABLE {quote_identifier(table)}"
        if operation == "rename_field":
            new_name = params.get("newName") or ""
            sql = f"{target} RENAME COLUMN {quote_identifier(field)} TO {quote_identifier(new_name)}"
            message = f"✅ 已成功将 {table} 表的 {field} 字段重命名为 {new_name}"
        elif operation == "change_field_type":
            new_type = column_type(params.get("newType") or "")
            sql = f"{target} MODIFY COLUMN {quote_identifier(field)} {new_type}"
            message = f"✅ 已成功将 {table} 表的 {field} 字段类型修改为 {new_type}"
        else:
            sql = f"{target} DROP COLUMN {quote_identifier(field)}"
            message = f"✅ 已删除 {table} 表的 {field} 字段"

        await self.mysql.run_sql(env_id, sql)
        return AgentResponse(
            type="success",
            message=message,
            metadata={"sql": sql, "dbType": "mysql", "table": table},
            suggestions=["查看表结构", "验证数据"],
        )
