"""Tool registry for the ReAct agents."""

from __future__ import annotations

import logging
from typing import Any, Callable

from nldb.tools.base import ToolCategory, ToolDefinition

logger = logging.getLogger(__name__)


class ToolRegistry:
    _definitions: dict[str, ToolDefinition] = {}
    _handlers: dict[str, Callable[..., Any]] = {}

    @classmethod
    def register(cls, definition: ToolDefinition, handler: Callable[..., Any]) -> None:
        cls._definitions[definition.name] = definition
        cls._handlers[definition.name] = handler
        logger.debug(f"Registered tool: {definition.name}")

    @classmethod
    def get_definition(cls, name: str) -> ToolDefinition | None:
        return cls._definitions.get(name)

    @classmethod
    def get_handler(cls, name: str) -> Callable[..., Any] | None:
        return cls._handlers.get(name)

    @classmethod
    def list_definitions(cls, category: ToolCategory | None = None) -> list[ToolDefinition]:
        definitions = list(cls._definitions.values())
        if category is None:
            return definitions
        return [definition for definition in definitions if definition.category == category]
