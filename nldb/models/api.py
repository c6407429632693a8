"""
API Request/Response Models

Pydantic models for FastAPI endpoints. Field aliases keep the camelCase
wire format used by the chat UI.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ChatQueryRequest(BaseModel):
    """Request model for the chat endpoint."""

    message: str = Field(default="", description="User's natural language message")
    context: dict[str, Any] = Field(
        default_factory=dict,
        description="Client context: sessionId, envId, dbType, userId",
    )

    model_config = {
        "json_schema_extra": {
            "example": {
                "message": "查询 users 表",
                "context": {"sessionId": "s-1", "envId": "env-123"},
            }
        }
    }


class ConfirmRequest(BaseModel):
    """Second step of a destructive operation returned as confirmation_required."""

    operation: str = Field(..., description="Operation name from the confirmation metadata")
    params: dict[str, Any] = Field(default_factory=dict)
    confirmed: bool = Field(default=True)


class DocQARequest(BaseModel):
    question: str = Field(default="", description="Question about the documentation")


class DocSource(BaseModel):
    """Documentation chunk cited by an answer."""

    title: str
    content: str
    score: float


class DocQAResponse(BaseModel):
    answer: str
    sources: list[DocSource] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)


class LoginRequest(BaseModel):
    cookie: str = Field(default="", description="Console session cookie")
    env_id: str | None = Field(default=None, alias="envId")

    model_config = ConfigDict(populate_by_name=True)


class AuthStatusResponse(BaseModel):
    logged_in: bool = Field(..., alias="loggedIn")
    env_id: str | None = Field(default=None, alias="envId")
    has_token: bool = Field(default=False, alias="hasToken")

    model_config = ConfigDict(populate_by_name=True)


class EnvRequest(BaseModel):
    env_id: str | None = Field(default=None, alias="envId")

    model_config = ConfigDict(populate_by_name=True)


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(..., description="Service status")
    version: str = Field(..., description="Application version")
    timestamp: str = Field(..., description="Current timestamp")
