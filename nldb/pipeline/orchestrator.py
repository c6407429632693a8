"""
Chat Pipeline

LangGraph flow handling one chat message:

    enrich → classify → route → remember → END

- enrich: session history, environment and last table from ContextManager
- classify: configured IntentClassifier; a failed classification degrades
  to general chat instead of failing the request
- route: AgentRouter picks and runs the agent
- remember: the turn is appended to the session history
"""

import logging
import time
from typing import Any, TypedDict

from langgraph.graph import END, StateGraph

from nldb.agents.classifier import IntentClassifier
from nldb.models.agent import AgentResponse, IntentResult, IntentType
from nldb.pipeline.context import DEFAULT_SESSION, ContextManager
from nldb.pipeline.router import AgentRouter

logger = logging.getLogger(__name__)


class ChatState(TypedDict, total=False):
    """State schema for one chat turn."""

    message: str
    user_id: str | None
    raw_context: dict[str, Any]
    context: dict[str, Any]
    intent: IntentResult | None
    response: AgentResponse | None
    started_at: float


class ChatPipeline:
    """
    Classify a message, run the matching agent and record the turn.

    Usage:
        pipeline = ChatPipeline(classifier, router, context_manager)
        response = await pipeline.run("查询 users 表", {"envId": "env-1"})
    """

    def __init__(
        self,
        classifier: IntentClassifier,
        router: AgentRouter,
        context_manager: ContextManager,
    ):
        self.classifier = classifier
        self.router = router
        self.context_manager = context_manager
        self.graph = self._build_graph()

    def _build_graph(self):
        workflow = StateGraph(ChatState)
        workflow.add_node("enrich", self._run_enrich)
        workflow.add_node("classify", self._run_classify)
        workflow.add_node("route", self._run_route)
        workflow.add_node("remember", self._run_remember)

        workflow.set_entry_point("enrich")
        workflow.add_edge("enrich", "classify")
        workflow.add_edge("classify", "route")
        workflow.add_edge("route", "remember")
        workflow.add_edge("remember", END)
        return workflow.compile()

    async def run(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        user_id: str | None = None,
    ) -> AgentResponse:
        initial_state: ChatState = {
            "message": message,
            "user_id": user_id,
            "raw_context": context or {},
            "context": {},
            "intent": None,
            "response": None,
            "started_at": time.perf_counter(),
        }
        result = await self.graph.ainvoke(initial_state)

        intent = result.get("intent")
        logger.info(
            "Chat turn complete",
            extra={
                "intent": intent.type.value if intent else None,
                "response_type": result["response"].type,
                "duration_ms": (time.perf_counter() - result["started_at"]) * 1000,
            },
        )
        return result["response"]

    async def confirm(
        self, operation: str, params: dict[str, Any], confirmed: bool = True
    ) -> AgentResponse:
        return await self.router.confirm(operation, params, confirmed)

    async def clear(self, session_id: str = DEFAULT_SESSION) -> None:
        await self.context_manager.clear(session_id)

    async def _run_enrich(self, state: ChatState) -> ChatState:
        state["context"] = await self.context_manager.enrich(
            state.get("raw_context"), user_id=state.get("user_id")
        )
        return state

    async def _run_classify(self, state: ChatState) -> ChatState:
        try:
            state["intent"] = await self.classifier.classify(state["message"], state["context"])
        except Exception as e:
            logger.warning(
                "Classification failed, treating message as general chat",
                extra={"error": str(e)},
            )
            state["intent"] = IntentResult(
                type=IntentType.GENERAL_CHAT, confidence=0.5, classifier="fallback"
            )
        logger.info(
            f"Classified as {state['intent'].type.value}",
            extra={
                "intent": state["intent"].type.value,
                "confidence": state["intent"].confidence,
                "classifier": state["intent"].classifier,
            },
        )
        return state

    async def _run_route(self, state: ChatState) -> ChatState:
        state["response"] = await self.router.route(
            state["intent"], state["message"], state["context"]
        )
        return state

    async def _run_remember(self, state: ChatState) -> ChatState:
        await self.context_manager.save(
            state["context"].get("sessionId", DEFAULT_SESSION),
            state["message"],
            state["intent"],
            state["response"],
        )
        return state
