"""
Base Agent Framework

Abstract base class for every handler agent the router can dispatch to.
Provides a consistent interface, timing and logging, and converts
unexpected exceptions into AgentError so the router can map them to an
error response.

Usage:
    class MyAgent(BaseAgent):
        def __init__(self):
            super().__init__(name="MyAgent")

        async def execute(self, request: AgentRequest) -> AgentResponse:
            return AgentResponse(type="success", message="done")
"""

import logging
import time
from abc import ABC, abstractmethod

from nldb.models.agent import AgentError, AgentMetadata, AgentRequest, AgentResponse

logger = logging.getLogger(__name__)


class BaseAgent(ABC):
    """
    Abstract base class for chat handler agents.

    The __call__ method wraps execute() with timing, logging and error
    conversion. There is no retry loop: a failed agent either has its own
    fallback path or surfaces an error response through the router.

    Attributes:
        name: Unique identifier for this agent
    """

    def __init__(self, name: str):
        self.name = name
        self._metadata = self._create_metadata()
        logger.debug(f"Initialized {self.name}", extra={"agent": self.name})

    @abstractmethod
    async def execute(self, request: AgentRequest) -> AgentResponse:
        """
        Execute the agent's core logic.

        Args:
            request: Message, intent parameters and enriched context

        Returns:
            AgentResponse for the chat UI

        Raises:
            AgentError: On execution failures
        """
        pass  # pragma: no cover - abstract method

    async def __call__(self, request: AgentRequest) -> AgentResponse:
        """Execute the agent with timing, logging and error conversion."""
        start_time = time.perf_counter()
        self._metadata = self._create_metadata()

        logger.info(
            f"Starting {self.name}",
            extra={
                "agent": self.name,
                "user_message": request.message[:100],
                "param_keys": list(request.params.keys()),
            },
        )

        try:
            response = await self.execute(request)
        except AgentError as e:
            self._finish(start_time, error=str(e))
            logger.warning(
                f"Agent error in {self.name}",
                extra={"agent": self.name, "error": str(e), "context": e.context},
                exc_info=True,
            )
            raise
        except Exception as e:
            self._finish(start_time, error=str(e))
            logger.error(
                f"Unexpected error in {self.name}",
                extra={"agent": self.name, "error": str(e), "error_type": type(e).__name__},
                exc_info=True,
            )
            raise AgentError(
                agent=self.name,
                message=str(e),
                recoverable=False,
                context={"error_type": type(e).__name__},
            ) from e

        self._finish(start_time)
        logger.info(
            f"Completed {self.name}",
            extra={
                "agent": self.name,
                "response_type": response.type,
                "duration_ms": self._metadata.duration_ms,
                "llm_calls": self._metadata.llm_calls,
            },
        )
        return response

    def _finish(self, start_time: float, error: str | None = None) -> None:
        self._metadata.mark_complete()
        self._metadata.duration_ms = (time.perf_counter() - start_time) * 1000
        self._metadata.error = error

    def _create_metadata(self) -> AgentMetadata:
        return AgentMetadata(agent_name=self.name)

    def _track_llm_call(self) -> None:
        """Track an LLM API call in metadata."""
        self._metadata.llm_calls += 1
