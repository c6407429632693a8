"""Tool system base types and decorator."""

from __future__ import annotations

import inspect
import logging
import re
import types
from collections.abc import Callable
from enum import StrEnum
from typing import Any, Literal, Union, get_args, get_origin, get_type_hints

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)
NONE_TYPE = type(None)


class ToolCategory(StrEnum):
    DOCUMENT = "document"
    MYSQL = "mysql"


ApprovalCheck = Callable[[dict[str, Any]], str | None]


class ToolPolicy(BaseModel):
    """
    Execution policy of one tool.

    ``approval_check`` receives the prepared arguments and returns a reason
    when the call must be confirmed by the user first.
    """

    enabled: bool = True
    approval_check: ApprovalCheck | None = None


class ToolDefinition(BaseModel):
    name: str
    description: str
    category: ToolCategory
    policy: ToolPolicy
    parameters_schema: dict[str, Any]

    @property
    def parameter_names(self) -> list[str]:
        return list(self.parameters_schema.get("properties", {}))

    @property
    def required_parameters(self) -> list[str]:
        return list(self.parameters_schema.get("required", []))


class ToolContext(BaseModel):
    """
    Per-run context handed to tool handlers.

    ``services`` carries the injected clients (document store, MySQL client);
    ``state`` is scratch space shared by the tool calls of one agent run.
    """

    user_id: str
    correlation_id: str
    env_id: str | None = None
    approved: bool = False
    metadata: dict[str, Any] = Field(default_factory=dict)
    services: dict[str, Any] = Field(default_factory=dict)
    state: dict[str, Any] = Field(default_factory=dict)

    def service(self, name: str) -> Any:
        try:
            return self.services[name]
        except KeyError:
            raise LookupError(f"Service '{name}' is not available to tools") from None

    def log_action(self, action: str, metadata: dict[str, Any]) -> None:
        logger.info(
            "tool_action",
            extra={
                "user_id": self.user_id,
                "correlation_id": self.correlation_id,
                "action": action,
                "metadata": metadata,
            },
        )


_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def to_snake_case(name: str) -> str:
    """``envId`` -> ``env_id``; snake_case names pass through."""
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def _extract_parameters_schema(func: Callable[..., Any]) -> dict[str, Any]:
    signature = inspect.signature(func)
    type_hints = get_type_hints(func)
    properties: dict[str, Any] = {}
    required: list[str] = []

    for name, param in signature.parameters.items():
        if name == "ctx":
            continue
        schema = _annotation_to_json_schema(type_hints.get(name, param.annotation))
        if param.default is inspect.Parameter.empty:
            required.append(name)
        elif param.default is not None:
            schema["default"] = param.default
        properties[name] = schema

    return {
        "type": "object",
        "properties": properties,
        "required": required,
        "additionalProperties": False,
    }


def _annotation_to_json_schema(annotation: Any) -> dict[str, Any]:
    if annotation is inspect.Parameter.empty or annotation is Any:
        return {}

    origin = get_origin(annotation)
    if origin is Literal:
        return {"enum": list(get_args(annotation))}
    if origin in (Union, types.UnionType):
        variants = [arg for arg in get_args(annotation) if arg is not NONE_TYPE]
        if len(variants) == 1:
            return _annotation_to_json_schema(variants[0])
        return {"anyOf": [_annotation_to_json_schema(arg) for arg in variants]}
    if origin in (list, tuple):
        return {"type": "array"}
    if origin is dict:
        return {"type": "object"}

    simple = {bool: "boolean", int: "integer", float: "number", str: "string", dict: "object", list: "array"}
    if annotation in simple:
        return {"type": simple[annotation]}
    return {"type": "string"}


def tool(
    name: str,
    description: str,
    category: ToolCategory,
    approval_check: ApprovalCheck | None = None,
    enabled: bool = True,
):
    """Register a function as a tool the ReAct agents can call."""

    def decorator(func: Callable[..., Any]):
        from nldb.tools.registry import ToolRegistry

        definition = ToolDefinition(
            name=name,
            description=description,
            category=category,
            policy=ToolPolicy(enabled=enabled, approval_check=approval_check),
            parameters_schema=_extract_parameters_schema(func),
        )
        ToolRegistry.register(definition, func)
        return func

    return decorator
