"""
Unit tests for BaseAgent.

Covers timing metadata, error conversion and LLM call tracking.
"""

import pytest

from nldb.agents.base import BaseAgent
from nldb.models.agent import AgentError, AgentRequest, AgentResponse


class EchoAgent(BaseAgent):
    def __init__(self):
        super().__init__(name="EchoAgent")

    async def execute(self, request: AgentRequest) -> AgentResponse:
        self._track_llm_call()
        return AgentResponse(type="chat", message=request.message)


class FailingAgent(BaseAgent):
    def __init__(self, error: Exception):
        super().__init__(name="FailingAgent")
        self.error = error

    async def execute(self, request: AgentRequest) -> AgentResponse:
        raise self.error


class TestBaseAgent:
    @pytest.mark.asyncio
    async def test_call_returns_response_and_records_metadata(self):
        agent = EchoAgent()
        response = await agent(AgentRequest(message="你好"))

        assert response.type == "chat"
        assert response.message == "你好"
        assert agent._metadata.llm_calls == 1
        assert agent._metadata.duration_ms is not None
        assert agent._metadata.completed_at is not None
        assert agent._metadata.error is None

    @pytest.mark.asyncio
    async def test_metadata_reset_per_call(self):
        agent = EchoAgent()
        await agent(AgentRequest(message="one"))
        await agent(AgentRequest(message="two"))
        assert agent._metadata.llm_calls == 1

    @pytest.mark.asyncio
    async def test_agent_error_is_reraised(self):
        error = AgentError("FailingAgent", "bad input", recoverable=True)
        agent = FailingAgent(error)

        with pytest.raises(AgentError) as exc_info:
            await agent(AgentRequest(message="x"))

        assert exc_info.value is error
        assert agent._metadata.error == str(error)

    @pytest.mark.asyncio
    async def test_unexpected_error_is_wrapped(self):
        agent = FailingAgent(KeyError("boom"))

        with pytest.raises(AgentError) as exc_info:
            await agent(AgentRequest(message="x"))

        assert exc_info.value.agent == "FailingAgent"
        assert exc_info.value.recoverable is False
        assert exc_info.value.context == {"error_type": "KeyError"}
        assert isinstance(exc_info.value.__cause__, KeyError)

    def test_request_env_id(self):
        assert AgentRequest(message="x", params={"envId": "env-1"}).env_id == "env-1"
        assert AgentRequest(message="x", context={"envId": "env-2"}).env_id == "env-2"
        assert AgentRequest(message="x").env_id is None
