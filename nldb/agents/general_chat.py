"""General Chat Agent: small talk and questions about previous turns."""

import logging
from typing import Any

from nldb.agents.base import BaseAgent
from nldb.llm.base import BaseLLMProvider
from nldb.models.agent import AgentRequest, AgentResponse
from nldb.prompts import PromptLoader

logger = logging.getLogger(__name__)

FALLBACK_GREETING = (
    "你好！我是 Natural Language DB 助手。我可以帮你查询数据库、分析数据、回答文档问题。"
    "请告诉我你想做什么？"
)


def contextual_suggestions(context: dict[str, Any]) -> list[str]:
    last_table = context.get("lastTable")
    if last_table:
        return [
            f"查询 {last_table} 表的数据",
            f"修改 {last_table} 表的字段",
            f"分析 {last_table} 表的内容",
        ]
    return ["查询 users 表", "给表添加字段", "如何使用 CloudBase SDK"]


def _history_for_prompt(history: list[dict[str, Any]]) -> list[dict[str, str]]:
    turns = []
    for entry in history:
        result = entry.get("result") or {}
        turns.append({"message": entry.get("message", ""), "reply": result.get("message", "")})
    return turns


class GeneralChatAgent(BaseAgent):
    """Conversational replies; falls back to a fixed greeting when the LLM is unavailable."""

    def __init__(self, llm: BaseLLMProvider, prompts: PromptLoader, temperature: float = 0.7):
        super().__init__(name="GeneralChatAgent")
        self.llm = llm
        self.prompts = prompts
        self.temperature = temperature

    async def execute(self, request: AgentRequest) -> AgentResponse:
        prompt = self.prompts.render(
            "chat/general.md",
            history=_history_for_prompt(request.context.get("history") or []),
            message=request.message,
        )
        try:
            reply = (await self.llm.complete(prompt, temperature=self.temperature)).strip()
            self._track_llm_call()
        except Exception as e:
            logger.warning("General chat LLM call failed, using greeting", extra={"error": str(e)})
            reply = FALLBACK_GREETING

        return AgentResponse(
            type="chat",
            message=reply or FALLBACK_GREETING,
            suggestions=contextual_suggestions(request.context),
        )
