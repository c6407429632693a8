"""
Local LLM Provider

Implementation of BaseLLMProvider for local model servers. Supports Ollama
and any server exposing the OpenAI-compatible /v1/chat/completions route.
"""

import json
import logging
from collections.abc import AsyncIterator

import httpx

from nldb.llm.base import BaseLLMProvider
from nldb.llm.models import LLMRequest, LLMResponse, LLMStreamChunk, LLMUsage, ModelInfo

logger = logging.getLogger(__name__)


class LocalProvider(BaseLLMProvider):
    """Local LLM provider for Ollama, vLLM and llama.cpp style servers."""

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str = "qwen2.5:7b",
        temperature: float = 0.0,
        max_tokens: int = 2000,
        timeout: int = 60,
        client: httpx.AsyncClient | None = None,
    ):
        super().__init__(
            provider_name="local",
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
        )

        self.base_url = base_url.rstrip("/")
        self.model = model
        self.client = client or httpx.AsyncClient(timeout=float(timeout))

        logger.info(
            f"Local provider initialized: {base_url} with model: {model}",
            extra={"base_url": base_url, "model": model},
        )

    def _payload(self, request: LLMRequest, stream: bool = False) -> dict:
        payload = {
            "model": request.model or self.model,
            "messages": [{"role": msg.role, "content": msg.content} for msg in request.messages],
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
            "stream": stream,
        }
        if request.stop:
            payload["stop"] = request.stop
        return payload

    async def generate(self, request: LLMRequest) -> LLMResponse:
        """Generate completion, trying the Ollama route before the OpenAI-compatible one."""
        request = self._apply_defaults(request)
        self._log_request(request)
        payload = self._payload(request)

        try:
            response = await self._post("/api/chat", payload)
        except httpx.HTTPError:
            response = await self._post("/v1/chat/completions", payload)

        content = response.get("message", {}).get("content", "") or (
            response.get("choices", [{}])[0].get("message", {}).get("content", "")
        )
        prompt_tokens = response.get("prompt_eval_count", 0) or response.get("usage", {}).get(
            "prompt_tokens", 0
        )
        completion_tokens = response.get("eval_count", 0) or response.get("usage", {}).get(
            "completion_tokens", 0
        )

        llm_response = LLMResponse(
            content=content,
            model=response.get("model", self.model),
            usage=LLMUsage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            ),
            finish_reason="stop",
            provider="local",
            metadata={"base_url": self.base_url},
        )

        self._log_response(llm_response)
        return llm_response

    async def stream(self, request: LLMRequest) -> AsyncIterator[LLMStreamChunk]:
        """Stream completion from the Ollama chat route."""
        request = self._apply_defaults(request)
        self._log_request(request)

        async with self.client.stream(
            "POST", f"{self.base_url}/api/chat", json=self._payload(request, stream=True)
        ) as response:
            response.raise_for_status()
            async for line in response.aiter_lines():
                if not line.strip():
                    continue
                chunk_data = json.loads(line)
                if content := chunk_data.get("message", {}).get("content"):
                    yield LLMStreamChunk(content=content)

    def count_tokens(self, text: str) -> int:
        """Count tokens (rough approximation for local models)."""
        return len(text) // 4

    def get_model_info(self, model_name: str | None = None) -> ModelInfo:
        return ModelInfo(
            name=model_name or self.model,
            provider="local",
            context_window=8192,
            max_output=2048,
        )

    async def _post(self, path: str, payload: dict) -> dict:
        response = await self.client.post(f"{self.base_url}{path}", json=payload)
        response.raise_for_status()
        return response.json()
