"""
NLDB Agents Module

Agents behind the chat router.

Available Agents:
    - BaseAgent: Abstract base class for all agents
    - DataExplorerAgent: Direct table/collection query (no LLM)
    - DocumentManagerAgent: Single document insert
    - FieldMutatorAgent: Field add/rename/retype/delete with confirmation
    - DocAssistantAgent: Documentation Q&A over the RAG service
    - GeneralChatAgent: Free-form conversation
    - ToolAgent / MySQLToolAgent: ReAct loops over the tool registry
    - OperationAgent: Documentation-grounded fallback for the tool agent

Usage:
    from nldb.agents import BaseAgent

    class MyAgent(BaseAgent):
        async def execute(self, request: AgentRequest) -> AgentResponse:
            return AgentResponse(type="success", message="done")
"""

from nldb.agents.base import BaseAgent
from nldb.agents.data_explorer import DataExplorerAgent
from nldb.agents.doc_assistant import DocAssistantAgent
from nldb.agents.document_manager import DocumentManagerAgent
from nldb.agents.field_mutator import FieldMutatorAgent
from nldb.agents.general_chat import GeneralChatAgent
from nldb.agents.operation_agent import OperationAgent
from nldb.agents.tool_agent import MySQLToolAgent, ToolAgent

__all__ = [
    "BaseAgent",
    "DataExplorerAgent",
    "DocAssistantAgent",
    "DocumentManagerAgent",
    "FieldMutatorAgent",
    "GeneralChatAgent",
    "MySQLToolAgent",
    "OperationAgent",
    "ToolAgent",
]
