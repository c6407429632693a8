"""
LLM Provider Module

Provider abstraction used by the classifier and agents.

Usage:
    from nldb.llm import LLMProviderFactory, LLMRequest, LLMMessage
    from nldb.config import get_settings

    provider = LLMProviderFactory.create_default_provider(get_settings().llm)
    response = await provider.generate(
        LLMRequest(messages=[LLMMessage(role="user", content="你好")])
    )
"""

from nldb.llm.base import BaseLLMProvider
from nldb.llm.factory import LLMProviderFactory
from nldb.llm.local import LocalProvider
from nldb.llm.models import (
    LLMMessage,
    LLMRequest,
    LLMResponse,
    LLMStreamChunk,
    LLMUsage,
    ModelInfo,
)
from nldb.llm.openai import OpenAIProvider

__all__ = [
    "BaseLLMProvider",
    "LLMMessage",
    "LLMRequest",
    "LLMResponse",
    "LLMStreamChunk",
    "LLMUsage",
    "ModelInfo",
    "LLMProviderFactory",
    "OpenAIProvider",
    "LocalProvider",
]
