"""Chat pipeline: context enrichment, classification, routing and history."""

from nldb.pipeline.context import ContextManager
from nldb.pipeline.orchestrator import ChatPipeline
from nldb.pipeline.router import AgentRouter

__all__ = ["AgentRouter", "ChatPipeline", "ContextManager"]
