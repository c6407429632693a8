"""
Base LLM Provider

Abstract base class defining the interface shared by every chat model
backend used by the classifier, the tool agents and the documentation
assistant.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from nldb.llm.models import LLMMessage, LLMRequest, LLMResponse, LLMStreamChunk, ModelInfo

logger = logging.getLogger(__name__)


class BaseLLMProvider(ABC):
    """
    Abstract base class for LLM providers.

    Attributes:
        provider_name: Unique identifier for this provider
        temperature: Default sampling temperature
        max_tokens: Default maximum tokens to generate
        timeout: Request timeout in seconds
    """

    def __init__(
        self,
        provider_name: str,
        temperature: float = 0.0,
        max_tokens: int = 2000,
        timeout: int = 60,
    ):
        self.provider_name = provider_name
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout

        logger.info(
            f"Initialized {provider_name} provider",
            extra={
                "provider": provider_name,
                "temperature": temperature,
                "max_tokens": max_tokens,
            },
        )

    @abstractmethod
    async def generate(self, request: LLMRequest) -> LLMResponse:
        """
        Generate a completion from the LLM.

        Args:
            request: LLM request with messages and parameters

        Returns:
            LLMResponse with generated content and metadata

        Raises:
            Exception: Provider-specific errors (API errors, timeouts, etc.)
        """
        pass  # pragma: no cover - abstract method

    @abstractmethod
    async def stream(self, request: LLMRequest) -> AsyncIterator[LLMStreamChunk]:
        """Stream a completion from the LLM chunk by chunk."""
        pass  # pragma: no cover - abstract method

    @abstractmethod
    def count_tokens(self, text: str) -> int:
        """Count tokens in a text string."""
        pass  # pragma: no cover - abstract method

    @abstractmethod
    def get_model_info(self, model_name: str | None = None) -> ModelInfo:
        """Get information about a model (None = default model)."""
        pass  # pragma: no cover - abstract method

    async def complete(
        self,
        prompt: str,
        *,
        system: str | None = None,
        temperature: float | None = None,
        stop: list[str] | None = None,
    ) -> str:
        """
        Generate from a single rendered prompt and return only the text.

        Args:
            prompt: User message content
            system: Optional system message sent first
            temperature: Overrides the provider default
            stop: Stop sequences
        """
        messages = []
        if system:
            messages.append(LLMMessage(role="system", content=system))
        messages.append(LLMMessage(role="user", content=prompt))
        response = await self.generate(
            LLMRequest(messages=messages, temperature=temperature, stop=stop)
        )
        return response.content

    def _apply_defaults(self, request: LLMRequest) -> LLMRequest:
        """Apply default values to request if not specified."""
        if request.temperature is None:
            request.temperature = self.temperature
        if request.max_tokens is None:
            request.max_tokens = self.max_tokens
        return request

    def _log_request(self, request: LLMRequest) -> None:
        """Log request details for debugging."""
        logger.debug(
            f"{self.provider_name} request",
            extra={
                "provider": self.provider_name,
                "message_count": len(request.messages),
                "temperature": request.temperature,
                "max_tokens": request.max_tokens,
                "stream": request.stream,
            },
        )

    def _log_response(self, response: LLMResponse) -> None:
        """Log response details for debugging."""
        logger.debug(
            f"{self.provider_name} response",
            extra={
                "provider": self.provider_name,
                "model": response.model,
                "total_tokens": response.usage.total_tokens,
                "finish_reason": response.finish_reason,
            },
        )
