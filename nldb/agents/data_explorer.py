"""
Data Explorer Agent

Reads rows from a document collection or a MySQL table when the tool
agents are switched off.
"""

import logging
from typing import Any

from nldb.agents.base import BaseAgent
from nldb.clients.capi import CapiError
from nldb.clients.document_store import BaseDocumentStore
from nldb.clients.mysql import MySQLClient, quote_identifier
from nldb.models.agent import AgentRequest, AgentResponse

logger = logging.getLogger(__name__)


class DataExplorerAgent(BaseAgent):
    """Query a collection (FlexDB) or table (MySQL) and return its rows."""

    def __init__(
        self,
        store: BaseDocumentStore,
        mysql: MySQLClient,
        default_limit: int = 100,
    ):
        super().__init__(name="DataExplorerAgent")
        self.store = store
        self.mysql = mysql
        self.default_limit = default_limit

    async def execute(self, request: AgentRequest) -> AgentResponse:
        params, context = request.params, request.context
        db_type = params.get("dbType") or context.get("lastDbType") or "flexdb"
        table = params.get("table") or context.get("lastTable")
        env_id = request.env_id
        limit = int(context.get("limit") or self.default_limit)

        if not env_id:
            return AgentResponse(
                type="missing_params",
                message="请先配置环境 ID (envId)，或者在 .env 中设置 TCB_ENV_ID",
                suggestions=["配置环境 ID", "查看文档"],
            )
        if not table:
            return AgentResponse(
                type="missing_params",
                message='请告诉我要查询哪个表？例如："查询 users 表"',
                suggestions=["查询 users 表", "查询 orders 表"],
            )

        try:
            if db_type == "mysql":
                data = await self._query_mysql(env_id, table, limit)
            else:
                db_type = "flexdb"
                data = await self.store.query(env_id, table, limit=limit)
        except (CapiError, ValueError) as e:
            logger.error(
                "Data explorer query failed",
                extra={"table": table, "db_type": db_type, "error": str(e)},
            )
            return AgentResponse(
                type="error",
                message=f"查询失败: {e}",
                metadata={"error": str(e)},
                suggestions=["检查表名是否正确", "查看文档"],
            )

        return self._format(data, db_type, table, env_id)

    async def _query_mysql(self, env_id: str, table: str, limit: int) -> list[dict[str, Any]]:
        sql = f"SELECT * FROM {quote_identifier(table)} LIMIT {limit}"
        result = await self.mysql.run_sql(env_id, sql)
        return result.records()

    def _format(
        self, data: list[dict[str, Any]], db_type: str, table: str, env_id: str
    ) -> AgentResponse:
        count = len(data)
        if db_type == "mysql":
            message = f"已为您查询 MySQL 数据库 {env_id} 的 {table} 表，共 {count} 条数据"
        else:
            message = f"已为您查询 FlexDB 的 {table} 集合，共 {count} 条数据"

        return AgentResponse(
            type="query_result",
            message=message,
            data=data,
            metadata={
                "dbType": db_type,
                "table": table,
                "database": env_id,
                "rowCount": count,
                "columns": list(data[0].keys()) if data else [],
                "displayType": "table" if db_type == "mysql" else "document",
            },
            suggestions=["筛选数据", "分析这些数据", "导出为 Excel"],
        )
