"""
LLM Request and Response Models

Provider-agnostic pydantic models shared by the OpenAI-compatible and
local providers.
"""

from typing import Any, Literal

from pydantic import BaseModel, Field

FinishReason = Literal["stop", "length", "content_filter", "error"]


class LLMMessage(BaseModel):
    """Single message in an LLM conversation."""

    role: Literal["system", "user", "assistant"] = Field(..., description="Message role")
    content: str = Field(..., description="Message content", min_length=1)


class LLMRequest(BaseModel):
    """Request to an LLM provider."""

    messages: list[LLMMessage] = Field(..., description="Conversation messages", min_length=1)
    temperature: float | None = Field(
        None, ge=0.0, le=2.0, description="Sampling temperature (overrides default)"
    )
    max_tokens: int | None = Field(
        None, gt=0, description="Maximum tokens to generate (overrides default)"
    )
    stop: list[str] | None = Field(
        None, description="Stop sequences, used by the ReAct loop to halt before 'Observation:'"
    )
    stream: bool = Field(default=False, description="Whether to stream the response")
    model: str | None = Field(None, description="Specific model to use (overrides default)")
    metadata: dict[str, Any] = Field(
        default_factory=dict, description="Additional provider-specific parameters"
    )


class LLMUsage(BaseModel):
    """Token usage information."""

    prompt_tokens: int = Field(default=0, ge=0)
    completion_tokens: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)


class LLMResponse(BaseModel):
    """Response from an LLM provider."""

    content: str = Field(..., description="Generated text content")
    model: str = Field(..., description="Model that generated the response")
    usage: LLMUsage = Field(default_factory=LLMUsage, description="Token usage information")
    finish_reason: FinishReason = Field(default="stop")
    provider: str = Field(..., description="Provider that handled the request")
    metadata: dict[str, Any] = Field(default_factory=dict)


class LLMStreamChunk(BaseModel):
    """Streaming response chunk from an LLM provider."""

    content: str = Field(..., description="Chunk of generated text")
    finish_reason: FinishReason | None = Field(None)
    metadata: dict[str, Any] = Field(default_factory=dict)


class ModelInfo(BaseModel):
    """Information about a specific model."""

    name: str
    provider: str
    context_window: int = Field(..., gt=0)
    max_output: int = Field(..., gt=0)
    capabilities: list[str] = Field(default_factory=list)
