"""
Agent Router

Maps a classified intent to the agent that handles it. Database intents
go to the tool agents when they are enabled; destructive field changes
always go through the FieldMutatorAgent so they start with a
confirmation request.
"""

import logging
import traceback
import uuid
from typing import Any

from nldb.agents.base import BaseAgent
from nldb.agents.field_mutator import FieldMutatorAgent
from nldb.clients.document_store import BaseDocumentStore
from nldb.config import AgentSettings
from nldb.models.agent import (
    DB_OPERATION_INTENTS,
    DESTRUCTIVE_FIELD_ACTIONS,
    AgentError,
    AgentRequest,
    AgentResponse,
    IntentResult,
    IntentType,
    normalize_field_action,
)
from nldb.tools import ToolContext, ToolExecutor, ToolRegistry

logger = logging.getLogger(__name__)

NOT_IMPLEMENTED = {
    IntentType.CREATE_COLLECTION: AgentResponse(
        type="not_implemented",
        message="创建表功能正在开发中，敬请期待！",
        suggestions=["查询数据", "文档问答"],
    ),
    IntentType.DELETE_COLLECTION: AgentResponse(
        type="not_implemented",
        message="删除表功能需要谨慎操作，暂未开放",
        suggestions=["查询数据", "查看表结构"],
    ),
    IntentType.ANALYZE_DATA: AgentResponse(
        type="not_implemented",
        message="数据分析功能正在开发中，敬请期待！",
        suggestions=["先查询数据", "查看表内容"],
    ),
}

FIELD_OPERATIONS = frozenset({"rename_field", "change_field_type", "delete_field"})


class AgentRouter:
    """Dispatch table from intent to agent, plus execution of confirmed operations."""

    def __init__(
        self,
        settings: AgentSettings,
        store: BaseDocumentStore,
        data_explorer: BaseAgent,
        document_manager: BaseAgent,
        field_mutator: FieldMutatorAgent,
        doc_assistant: BaseAgent,
        general_chat: BaseAgent,
        tool_agent: BaseAgent | None = None,
        mysql_tool_agent: BaseAgent | None = None,
        executor: ToolExecutor | None = None,
        tool_services: dict[str, Any] | None = None,
    ):
        self.settings = settings
        self.store = store
        self.field_mutator = field_mutator
        self.tool_agent = tool_agent
        self.mysql_tool_agent = mysql_tool_agent
        self.executor = executor or ToolExecutor()
        self.tool_services = tool_services or {}
        self.agents: dict[IntentType, BaseAgent] = {
            IntentType.QUERY_DATABASE: data_explorer,
            IntentType.INSERT_DOCUMENT: document_manager,
            IntentType.MODIFY_FIELD: field_mutator,
            IntentType.DOC_QUESTION: doc_assistant,
            IntentType.GENERAL_CHAT: general_chat,
        }
        logger.info(
            "AgentRouter initialized",
            extra={
                "use_tool_agent": settings.use_tool_agent,
                "use_mysql_agent": settings.use_mysql_agent,
            },
        )

    def select_agent(
        self, intent: IntentResult, params: dict[str, Any], context: dict[str, Any]
    ) -> BaseAgent | None:
        if (
            intent.type == IntentType.MODIFY_FIELD
            and normalize_field_action(params.get("action")) in DESTRUCTIVE_FIELD_ACTIONS
        ):
            return self.field_mutator

        if intent.type in DB_OPERATION_INTENTS:
            db_type = (
                params.get("dbType")
                or context.get("dbType")
                or context.get("lastDbType")
                or "flexdb"
            )
            if db_type == "mysql" and self.settings.use_mysql_agent and self.mysql_tool_agent:
                return self.mysql_tool_agent
            if self.settings.use_tool_agent and self.tool_agent:
                return self.tool_agent

        return self.agents.get(intent.type)

    async def route(
        self, intent: IntentResult, message: str, context: dict[str, Any]
    ) -> AgentResponse:
        """Run the agent for ``intent``; failures come back as error responses."""
        params = dict(intent.params)
        if not params.get("envId") and context.get("envId"):
            params["envId"] = context["envId"]

        agent = self.select_agent(intent, params, context)
        if agent is None:
            if intent.type in NOT_IMPLEMENTED:
                return NOT_IMPLEMENTED[intent.type].model_copy(deep=True)
            return AgentResponse(
                type="error",
                message="抱歉，我不太理解你的意图。可以换个方式描述吗？",
                suggestions=["查询数据表", "文档问答", "数据分析"],
            )

        logger.info(
            f"Routing {intent.type.value} to {agent.name}",
            extra={"intent": intent.type.value, "agent": agent.name},
        )
        try:
            return await agent(AgentRequest(message=message, params=params, context=context))
        except Exception as e:
            return self._error_response(e)

    async def confirm(
        self, operation: str, params: dict[str, Any], confirmed: bool = True
    ) -> AgentResponse:
        """Execute an operation the user confirmed after a confirmation_required response."""
        if not confirmed:
            return AgentResponse(type="cancelled", message="已取消操作", suggestions=["查询数据"])

        logger.info("Executing confirmed operation", extra={"operation": operation})
        try:
            if operation in FIELD_OPERATIONS:
                return await self.field_mutator.confirm_and_execute(operation, params)
            if operation == "delete_documents":
                return await self._delete_documents(params)
            if self._is_gated_tool(operation):
                return await self._run_approved_tool(operation, params)
        except Exception as e:
            return self._error_response(e)
        return AgentResponse(type="error", message=f"未知操作: {operation}")

    async def _delete_documents(self, params: dict[str, Any]) -> AgentResponse:
        env_id, table = params.get("envId"), params.get("table")
        if not env_id or not table:
            return AgentResponse(type="missing_params", message="缺少执行所需的参数（envId、table）")
        deleted = await self.store.delete(env_id, table, params.get("where") or {})
        return AgentResponse(
            type="success",
            message=f"✅ 已从 {table} 集合删除 {deleted} 条文档",
            data={"deletedCount": deleted},
            metadata={"dbType": "flexdb", "table": table, "operation": "delete"},
            suggestions=[f"查询 {table} 表"],
        )

    @staticmethod
    def _is_gated_tool(operation: str) -> bool:
        definition = ToolRegistry.get_definition(operation)
        return definition is not None and definition.policy.approval_check is not None

    async def _run_approved_tool(self, operation: str, params: dict[str, Any]) -> AgentResponse:
        args = dict(params.get("args") or {})
        if not args:
            return AgentResponse(type="missing_params", message="缺少执行所需的参数（args）")
        ctx = ToolContext(
            user_id=params.get("userId") or "default-user",
            correlation_id=f"confirm-{uuid.uuid4().hex[:12]}",
            env_id=params.get("envId"),
            approved=True,
            services=self.tool_services,
        )
        executed = await self.executor.execute(operation, args, ctx)
        result = executed["result"]
        message = result.get("message") if isinstance(result, dict) else None
        return AgentResponse(
            type="success",
            message=f"✅ {message or '操作已执行'}",
            data=result,
            metadata={
                "dbType": params.get("dbType") or "flexdb",
                "table": params.get("table") or "",
                "operation": operation,
            },
            suggestions=["继续查询"],
        )

    @staticmethod
    def _error_response(error: Exception) -> AgentResponse:
        message = error.message if isinstance(error, AgentError) else str(error)
        logger.error("Agent execution failed", extra={"error": message}, exc_info=True)
        return AgentResponse(
            type="error",
            message=f"执行失败: {message}",
            metadata={"error": traceback.format_exc()},
        )
