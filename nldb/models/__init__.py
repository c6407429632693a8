"""Pydantic models shared across agents, pipeline and API."""

from nldb.models.agent import (
    DB_OPERATION_INTENTS,
    DESTRUCTIVE_FIELD_ACTIONS,
    AgentError,
    AgentMetadata,
    AgentRequest,
    AgentResponse,
    ClassificationError,
    ContextEntry,
    FieldMutation,
    IntentResult,
    IntentType,
    OperationError,
    ReActParseError,
    normalize_field_action,
)

__all__ = [
    "DB_OPERATION_INTENTS",
    "DESTRUCTIVE_FIELD_ACTIONS",
    "AgentError",
    "AgentMetadata",
    "AgentRequest",
    "AgentResponse",
    "ClassificationError",
    "ContextEntry",
    "FieldMutation",
    "IntentResult",
    "IntentType",
    "OperationError",
    "ReActParseError",
    "normalize_field_action",
]
