"""Document Manager Agent: inserts one document into a collection."""

import logging

from nldb.agents.base import BaseAgent
from nldb.clients.capi import CapiError
from nldb.clients.document_store import BaseDocumentStore
from nldb.models.agent import AgentRequest, AgentResponse

logger = logging.getLogger(__name__)


class DocumentManagerAgent(BaseAgent):
    def __init__(self, store: BaseDocumentStore):
        super().__init__(name="DocumentManagerAgent")
        self.store = store

    async def execute(self, request: AgentRequest) -> AgentResponse:
        env_id = request.env_id
        table = request.params.get("table") or request.context.get("lastTable")
        data = request.params.get("data")

        if not env_id:
            return AgentResponse(
                type="missing_params",
                message="❌ 请先配置环境 ID (envId)",
                suggestions=["配置环境 ID", "查看文档"],
            )
        if not table:
            return AgentResponse(
                type="missing_params",
                message='❌ 请告诉我要操作哪个表？例如："给 users 表新增一个文档"',
                suggestions=["查询 test 表", "查看文档"],
            )
        if not isinstance(data, dict) or not data:
            return AgentResponse(
                type="missing_params",
                message=(
                    f'❌ 请告诉我要插入什么数据？例如："给 {table} 表新增一个文档，'
                    '内容是 name: 张三, age: 25"'
                ),
                suggestions=[f"查询 {table} 表", "查看文档"],
            )

        try:
            inserted_id = await self.store.insert(env_id, table, data)
        except CapiError as e:
            logger.error("Insert failed", extra={"table": table, "error": str(e)})
            return AgentResponse(
                type="error",
                message=(
                    f"❌ 新增文档失败：{e.message}\n\n请检查：\n"
                    "1. 表名是否正确\n2. 数据格式是否合法\n3. 是否有权限操作"
                ),
                suggestions=["查看文档", f"查询 {table} 表"],
            )

        summary = ", ".join(f"{key}: {value}" for key, value in data.items())
        return AgentResponse(
            type="success",
            message=(
                f"✅ 成功往 {table} 表添加了一条新记录！\n\n📄 插入的数据：\n{summary}\n\n"
                f"文档 ID: {inserted_id or '(自动生成)'}"
            ),
            data={"insertedId": inserted_id, "insertedData": data},
            metadata={"dbType": "flexdb", "table": table, "database": env_id},
            suggestions=[f"查询 {table} 表", "再插入一条数据", "查看文档"],
        )
