"""Doc Assistant Agent: documentation questions answered through RAG."""

import logging

from nldb.agents.base import BaseAgent
from nldb.knowledge import RAGService, RetrievalError
from nldb.models.agent import AgentRequest, AgentResponse

logger = logging.getLogger(__name__)


class DocAssistantAgent(BaseAgent):
    def __init__(self, rag: RAGService):
        super().__init__(name="DocAssistantAgent")
        self.rag = rag

    async def execute(self, request: AgentRequest) -> AgentResponse:
        question = request.params.get("question") or request.message
        try:
            result = await self.rag.answer(question)
        except RetrievalError as e:
            logger.error("Documentation lookup failed", extra={"error": str(e)})
            return AgentResponse(
                type="error",
                message=f"文档检索失败: {e}",
                suggestions=["稍后重试", "查询数据表"],
            )
        self._track_llm_call()

        return AgentResponse(
            type="doc_answer",
            message=result["answer"],
            metadata={"question": question, "sources": result["sources"]},
            suggestions=result["suggestions"] or ["查询数据表", "继续提问"],
        )
