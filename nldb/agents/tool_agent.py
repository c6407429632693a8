"""
Tool Agents

ReAct agents that let the LLM pick tools and generate their arguments:

- ToolAgent: document store tools, falls back to the OperationAgent when
  the model could not find a suitable tool or the loop failed.
- MySQLToolAgent: the ``run_sql`` tool; the model sees a preview while the
  full SELECT result is returned to the client.

A tool call held back by its approval check is returned as
``confirmation_required`` instead of being executed.
"""

import logging
import re
import uuid
from typing import Any

from nldb.agents.base import BaseAgent
from nldb.agents.react import ReActRunner
from nldb.models.agent import AgentRequest, AgentResponse
from nldb.tools import ToolContext
from nldb.tools.builtin.mysql import LAST_QUERY_KEY

logger = logging.getLogger(__name__)

FALLBACK_PHRASES = (
    "不知道",
    "没有这个工具",
    "无法完成",
    "不支持这个操作",
    "没有合适的工具",
    "找不到对应的",
)

_SQL_TABLE = re.compile(
    r"\b(?:FROM|INTO|UPDATE|TABLE)\s+(?:IF\s+(?:NOT\s+)?EXISTS\s+)?`?([A-Za-z0-9_\-]+)`?",
    re.IGNORECASE,
)


def should_fallback(result: dict[str, Any]) -> bool:
    """
    Decide whether a ReAct result should be handed to the fallback agent.

    Only when no tool was invoked at all, or the final answer says the model
    did not know how to proceed. A failed tool call that the model explained
    is kept.
    """
    if not result.get("intermediate_steps"):
        logger.info("Fallback: no tool was invoked")
        return True
    output = (result.get("output") or "").lower()
    if any(phrase in output for phrase in FALLBACK_PHRASES):
        logger.info("Fallback: model reported it could not complete the request")
        return True
    return False


def table_from_sql(sql: str) -> str | None:
    match = _SQL_TABLE.search(sql or "")
    return match.group(1) if match else None


class ToolAgent(BaseAgent):
    """
    Document store ReAct agent.

    Attributes:
        runner: ReAct loop over the document tool category
        services: Clients exposed to tools through ToolContext.service()
        fallback: Agent used when the loop cannot handle the request
    """

    db_type = "flexdb"
    suggestions = ["继续查询", "筛选数据", "导出数据"]

    def __init__(
        self,
        runner: ReActRunner,
        services: dict[str, Any],
        fallback: BaseAgent | None = None,
        preview_rows: int = 3,
        name: str = "ToolAgent",
    ):
        super().__init__(name=name)
        self.runner = runner
        self.services = services
        self.fallback = fallback
        self.preview_rows = preview_rows

    def build_context(self, request: AgentRequest) -> ToolContext:
        return ToolContext(
            user_id=request.context.get("userId") or "default-user",
            correlation_id=f"{self.name}-{uuid.uuid4().hex[:12]}",
            env_id=request.env_id,
            metadata={"preview_rows": self.preview_rows},
            services=self.services,
        )

    def prompt_vars(self, request: AgentRequest) -> dict[str, Any]:
        return {
            "env_id": request.env_id,
            "last_table": request.context.get("lastTable"),
        }

    async def execute(self, request: AgentRequest) -> AgentResponse:
        ctx = self.build_context(request)
        logger.info(
            f"{self.name} handling request",
            extra={"env_id": ctx.env_id, "correlation_id": ctx.correlation_id},
        )
        try:
            result = await self.runner.run(request.message, ctx, self.prompt_vars(request))
        except Exception as e:
            return await self.handle_failure(request, e)

        self._metadata.llm_calls += result.get("llm_calls", 0)
        if result.get("approval_required"):
            return self.confirmation_response(result["approval_required"], request)
        if self.fallback is not None and should_fallback(result):
            return await self.fallback(request)
        return self.format_response(result, request, ctx)

    def confirmation_response(
        self, approval: dict[str, Any], request: AgentRequest
    ) -> AgentResponse:
        """Hand a held-back tool call to the user; /chat/confirm runs it with the same args."""
        args = approval["args"]
        table = args.get("collection") or table_from_sql(str(args.get("sql", "")))
        return AgentResponse(
            type="confirmation_required",
            message=f"⚠️ 即将执行：{approval['reason']}，此操作不可恢复，请确认。",
            metadata={
                "operation": approval["tool"],
                "args": args,
                "table": table or "",
                "dbType": self.db_type,
                "envId": request.env_id,
                "risks": [approval["reason"]],
            },
        )

    async def handle_failure(self, request: AgentRequest, error: Exception) -> AgentResponse:
        logger.error(
            f"{self.name} loop failed",
            extra={"agent": self.name, "error": str(error)},
            exc_info=True,
        )
        if self.fallback is not None:
            try:
                return await self.fallback(request)
            except Exception as fallback_error:
                logger.error(
                    "Fallback agent failed",
                    extra={"agent": self.fallback.name, "error": str(fallback_error)},
                )
        return AgentResponse(
            type="error",
            message=f"执行失败: {error}",
            suggestions=["检查参数是否正确", "查看文档"],
        )

    def format_response(
        self, result: dict[str, Any], request: AgentRequest, ctx: ToolContext
    ) -> AgentResponse:
        data: Any = None
        tool_used = ""
        collection = ""
        count = 0

        for step in result.get("intermediate_steps", []):
            output = step.get("result")
            if not step.get("success") or not isinstance(output, dict):
                continue
            tool_used = tool_used or step["tool"]
            collection = collection or output.get("collection", "")

            if output.get("data"):
                data = output["data"]
                count = output.get("count") or (len(data) if isinstance(data, list) else 1)

            if output.get("count") is not None:
                count = output["count"]
            elif output.get("insertedId"):
                data = output.get("data")
                count = 1
            elif output.get("updatedCount") is not None:
                count = output["updatedCount"]

        return AgentResponse(
            type="query_result" if data else "tool_response",
            message=result.get("output", ""),
            data=data,
            metadata={
                "dbType": self.db_type,
                "table": collection,
                "database": request.env_id or "",
                "rowCount": count,
                "columns": _columns_of(data),
                "displayType": "document",
                "toolUsed": tool_used,
            },
            suggestions=list(self.suggestions),
        )


class MySQLToolAgent(ToolAgent):
    """MySQL ReAct agent. There is no fallback: failures become error responses."""

    db_type = "mysql"
    suggestions = ["继续查询", "查看表结构", "导出数据"]

    def __init__(
        self,
        runner: ReActRunner,
        services: dict[str, Any],
        preview_rows: int = 3,
    ):
        super().__init__(
            runner, services, fallback=None, preview_rows=preview_rows, name="MySQLToolAgent"
        )

    def prompt_vars(self, request: AgentRequest) -> dict[str, Any]:
        return {"last_table": request.context.get("lastTable")}

    async def handle_failure(self, request: AgentRequest, error: Exception) -> AgentResponse:
        logger.error(
            "MySQL tool loop failed",
            extra={"agent": self.name, "error": str(error)},
            exc_info=True,
        )
        return AgentResponse(
            type="error",
            message=f"MySQL 操作失败: {error}",
            suggestions=["检查 SQL 语法", "查看表结构", "检查权限"],
        )

    def format_response(
        self, result: dict[str, Any], request: AgentRequest, ctx: ToolContext
    ) -> AgentResponse:
        data: Any = None
        columns: list[str] = []
        tool_used = ""
        table = ""
        row_count = 0

        cached = ctx.state.pop(LAST_QUERY_KEY, None)
        if cached:
            columns = list(cached["columns"])
            data = [dict(zip(columns, row, strict=False)) for row in cached["rows"]]
            row_count = len(data)
            tool_used = "run_sql"
            table = table_from_sql(cached["sql"]) or ""

        for step in result.get("intermediate_steps", []):
            output = step.get("result")
            if not step.get("success") or not isinstance(output, dict):
                continue
            tool_used = tool_used or step["tool"]
            if output.get("affectedRows") is not None:
                row_count = output["affectedRows"]
            if not table:
                table = table_from_sql(str(step.get("tool_input", ""))) or ""

        return AgentResponse(
            type="query_result" if data is not None else "tool_response",
            message=result.get("output", ""),
            data=data,
            metadata={
                "dbType": self.db_type,
                "table": table or request.context.get("lastTable") or "",
                "database": request.env_id or "",
                "rowCount": row_count,
                "columns": columns,
                "displayType": "table",
                "toolUsed": tool_used,
            },
            suggestions=list(self.suggestions),
        )


def _columns_of(data: Any) -> list[str]:
    if isinstance(data, list) and data and isinstance(data[0], dict):
        return list(data[0].keys())
    if isinstance(data, dict):
        return list(data.keys())
    return []
