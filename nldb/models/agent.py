"""
Agent I/O Models

Pydantic models for intents, agent requests/responses, conversation
history and field mutations, plus the exception hierarchy used at agent
boundaries.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class IntentType(str, Enum):
    """Intent categories a chat message can be classified into."""

    QUERY_DATABASE = "QUERY_DATABASE"
    INSERT_DOCUMENT = "INSERT_DOCUMENT"
    MODIFY_FIELD = "MODIFY_FIELD"
    CREATE_COLLECTION = "CREATE_COLLECTION"
    DELETE_COLLECTION = "DELETE_COLLECTION"
    ANALYZE_DATA = "ANALYZE_DATA"
    DOC_QUESTION = "DOC_QUESTION"
    GENERAL_CHAT = "GENERAL_CHAT"


DB_OPERATION_INTENTS = frozenset(
    {
        IntentType.QUERY_DATABASE,
        IntentType.INSERT_DOCUMENT,
        IntentType.MODIFY_FIELD,
        IntentType.ANALYZE_DATA,
        IntentType.CREATE_COLLECTION,
        IntentType.DELETE_COLLECTION,
    }
)

DESTRUCTIVE_FIELD_ACTIONS = frozenset({"rename", "change_type", "delete_field"})

FIELD_ACTION_ALIASES = {
    "add_field": "add_field",
    "add": "add_field",
    "rename": "rename",
    "rename_field": "rename",
    "change_type": "change_type",
    "change_field_type": "change_type",
    "modify_type": "change_type",
    "delete_field": "delete_field",
    "delete": "delete_field",
    "remove": "delete_field",
    "drop": "delete_field",
}


def normalize_field_action(action: Any) -> str | None:
    """Map classifier spellings such as "delete" or "rename_field" to a FieldMutation action."""
    return FIELD_ACTION_ALIASES.get(str(action or "").strip().lower())


class IntentResult(BaseModel):
    """Classified intent with confidence and a loosely typed parameter bag."""

    type: IntentType
    confidence: float = Field(..., ge=0.0, le=1.0)
    params: dict[str, Any] = Field(default_factory=dict)
    classifier: str | None = Field(None, description="Classifier stage that produced the result")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "type": "QUERY_DATABASE",
                "confidence": 0.95,
                "params": {"table": "users", "dbType": "flexdb"},
            }
        }
    )


class AgentMetadata(BaseModel):
    """Metadata about agent execution."""

    agent_name: str
    started_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    completed_at: datetime | None = None
    duration_ms: float | None = None
    llm_calls: int = 0
    error: str | None = None

    def mark_complete(self) -> None:
        """Mark execution as complete and calculate duration."""
        self.completed_at = datetime.now(UTC)
        delta = self.completed_at - self.started_at
        self.duration_ms = delta.total_seconds() * 1000


class AgentRequest(BaseModel):
    """Input handed to every agent: the raw message, intent params and enriched context."""

    message: str
    params: dict[str, Any] = Field(default_factory=dict)
    context: dict[str, Any] = Field(default_factory=dict)

    @property
    def env_id(self) -> str | None:
        return self.params.get("envId") or self.context.get("envId")


ResponseType = Literal[
    "query_result",
    "tool_response",
    "success",
    "operation_result",
    "doc_answer",
    "chat",
    "confirmation_required",
    "missing_params",
    "clarification_needed",
    "not_implemented",
    "not_supported",
    "cancelled",
    "error",
]


class AgentResponse(BaseModel):
    """Structured reply returned to the chat UI."""

    type: ResponseType
    message: str
    data: Any = None
    metadata: dict[str, Any] | None = None
    suggestions: list[str] | None = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "type": "query_result",
                "message": "查询到 2 条记录",
                "data": [{"_id": "1", "name": "Alice"}],
                "metadata": {"dbType": "flexdb", "table": "users", "rowCount": 2},
            }
        }
    )


class ContextEntry(BaseModel):
    """One turn of conversation history."""

    message: str
    intent: IntentResult | None = None
    result: AgentResponse | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class FieldMutation(BaseModel):
    """Requested change to a single field of a collection or table."""

    table: str
    field: str
    action: Literal["add_field", "rename", "change_type", "delete_field"] | None = None
    new_name: str | None = None
    new_type: str | None = None
    default_value: Any = None
    db_type: str = "flexdb"
    env_id: str | None = None

    @classmethod
    def from_params(cls, params: dict[str, Any]) -> "FieldMutation":
        return cls(
            table=params.get("table") or "",
            field=params.get("field") or "",
            action=normalize_field_action(params.get("action")),
            new_name=params.get("newName"),
            new_type=params.get("newType"),
            default_value=params.get("defaultValue"),
            db_type=params.get("dbType") or "flexdb",
            env_id=params.get("envId"),
        )


# ============================================================================
# Errors
# ============================================================================


class AgentError(Exception):
    """
    Custom exception for agent execution errors.

    Attributes:
        agent: Name of the agent that raised the error
        message: Error description
        recoverable: Whether a fallback path may still produce an answer
        context: Additional context for debugging
    """

    def __init__(
        self,
        agent: str,
        message: str,
        recoverable: bool = True,
        context: dict[str, Any] | None = None,
    ):
        self.agent = agent
        self.message = message
        self.recoverable = recoverable
        self.context = context or {}
        super().__init__(f"[{agent}] {message}")


class ClassificationError(AgentError):
    """A classifier stage could not produce an intent."""


class ReActParseError(AgentError):
    """The model output contained neither an action nor a final answer."""


class OperationError(AgentError):
    """A generated document operation could not be validated or executed."""
