"""Tool system entrypoint."""

from __future__ import annotations

from nldb.tools.base import ToolCategory, ToolContext, tool
from nldb.tools.executor import ToolExecutionError, ToolExecutor
from nldb.tools.policy import ApprovalRequired, PolicyEngine, ToolPolicyError
from nldb.tools.registry import ToolRegistry


def initialize_tools() -> None:
    # Importing the modules registers the built-in tools
    from nldb.tools.builtin import document, mysql  # noqa: F401


__all__ = [
    "ApprovalRequired",
    "PolicyEngine",
    "ToolCategory",
    "ToolContext",
    "ToolExecutionError",
    "ToolExecutor",
    "ToolPolicyError",
    "ToolRegistry",
    "initialize_tools",
    "tool",
]
