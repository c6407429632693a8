"""
OpenAI-Compatible LLM Provider

Implementation of BaseLLMProvider on top of the official openai SDK.
Works with api.openai.com as well as OpenAI-compatible endpoints such as
DashScope (qwen-plus) by setting LLM_OPENAI_BASE_URL.
"""

import logging
from collections.abc import AsyncIterator

import openai
import tiktoken
from openai import AsyncOpenAI

from nldb.llm.base import BaseLLMProvider
from nldb.llm.models import (
    FinishReason,
    LLMRequest,
    LLMResponse,
    LLMStreamChunk,
    LLMUsage,
    ModelInfo,
)

logger = logging.getLogger(__name__)

_MODEL_INFO = {
    "qwen-plus": ModelInfo(
        name="qwen-plus",
        provider="openai",
        context_window=131072,
        max_output=8192,
        capabilities=["function-calling", "json-mode"],
    ),
    "qwen-turbo": ModelInfo(
        name="qwen-turbo",
        provider="openai",
        context_window=131072,
        max_output=8192,
        capabilities=["function-calling", "json-mode"],
    ),
    "gpt-4o": ModelInfo(
        name="gpt-4o",
        provider="openai",
        context_window=128000,
        max_output=16384,
        capabilities=["function-calling", "vision", "json-mode"],
    ),
    "gpt-4o-mini": ModelInfo(
        name="gpt-4o-mini",
        provider="openai",
        context_window=128000,
        max_output=16384,
        capabilities=["function-calling", "vision", "json-mode"],
    ),
}


class OpenAIProvider(BaseLLMProvider):
    """OpenAI-compatible chat completion provider using AsyncOpenAI."""

    def __init__(
        self,
        api_key: str,
        model: str = "qwen-plus",
        base_url: str | None = None,
        temperature: float = 0.0,
        max_tokens: int = 2000,
        timeout: int = 60,
    ):
        super().__init__(
            provider_name="openai",
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
        )

        self.model = model
        self.base_url = base_url
        self.client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=float(timeout),
        )

        logger.info(
            f"OpenAI provider initialized with model: {model}",
            extra={"model": model, "base_url": base_url},
        )

    async def generate(self, request: LLMRequest) -> LLMResponse:
        """
        Generate completion using the chat completions API.

        Raises:
            openai.APIError: On API errors
            openai.APITimeoutError: On timeout
        """
        request = self._apply_defaults(request)
        self._log_request(request)

        extra = dict(request.metadata)
        if request.stop:
            extra["stop"] = request.stop

        try:
            messages = [{"role": msg.role, "content": msg.content} for msg in request.messages]
            response = await self.client.chat.completions.create(
                model=request.model or self.model,
                messages=messages,
                temperature=request.temperature,
                max_tokens=request.max_tokens,
                **extra,
            )

            usage = response.usage
            llm_response = LLMResponse(
                content=response.choices[0].message.content or "",
                model=response.model,
                usage=LLMUsage(
                    prompt_tokens=usage.prompt_tokens if usage else 0,
                    completion_tokens=usage.completion_tokens if usage else 0,
                    total_tokens=usage.total_tokens if usage else 0,
                ),
                finish_reason=self._map_finish_reason(response.choices[0].finish_reason),
                provider="openai",
                metadata={"id": response.id, "created": response.created},
            )

            self._log_response(llm_response)
            return llm_response

        except openai.APITimeoutError as e:
            logger.error(f"OpenAI API timeout: {e}")
            raise
        except openai.APIError as e:
            logger.error(f"OpenAI API error: {e}")
            raise

    async def stream(self, request: LLMRequest) -> AsyncIterator[LLMStreamChunk]:
        """Stream completion using the chat completions API."""
        request = self._apply_defaults(request)
        request.stream = True
        self._log_request(request)

        try:
            messages = [{"role": msg.role, "content": msg.content} for msg in request.messages]
            stream = await self.client.chat.completions.create(
                model=request.model or self.model,
                messages=messages,
                temperature=request.temperature,
                max_tokens=request.max_tokens,
                stream=True,
                **request.metadata,
            )

            async for chunk in stream:
                if not chunk.choices:
                    continue
                choice = chunk.choices[0]
                if choice.delta.content:
                    yield LLMStreamChunk(
                        content=choice.delta.content,
                        finish_reason=self._map_finish_reason(choice.finish_reason)
                        if choice.finish_reason
                        else None,
                        metadata={"id": chunk.id},
                    )

        except openai.APIError as e:
            logger.error(f"OpenAI streaming error: {e}")
            raise

    def count_tokens(self, text: str) -> int:
        """Count tokens using tiktoken, approximating when no encoding is available."""
        try:
            try:
                encoding = tiktoken.encoding_for_model(self.model)
            except KeyError:
                encoding = tiktoken.get_encoding("cl100k_base")
            return len(encoding.encode(text))
        except Exception:
            # tiktoken downloads encodings on first use and fails offline
            return len(text) // 4

    def get_model_info(self, model_name: str | None = None) -> ModelInfo:
        model = model_name or self.model
        return _MODEL_INFO.get(
            model,
            ModelInfo(name=model, provider="openai", context_window=32768, max_output=4096),
        )

    def _map_finish_reason(self, reason: str | None) -> FinishReason:
        """Map OpenAI finish reason to our standard format."""
        if reason in ("stop", "length", "content_filter"):
            return reason
        return "stop"
