"""Policy enforcement for tool execution."""

from __future__ import annotations

from typing import Any

from nldb.tools.base import ToolContext, ToolDefinition


class ToolPolicyError(Exception):
    pass


class ApprovalRequired(ToolPolicyError):
    """The tool arguments describe a destructive change the user has not confirmed yet."""

    def __init__(self, tool: str, args: dict[str, Any], reason: str):
        super().__init__(f"Tool '{tool}' requires confirmation: {reason}")
        self.tool = tool
        self.tool_args = args
        self.reason = reason


class PolicyEngine:
    def enforce(self, definition: ToolDefinition, args: dict[str, Any], ctx: ToolContext) -> None:
        policy = definition.policy
        if not policy.enabled:
            raise ToolPolicyError(f"Tool '{definition.name}' is disabled by policy.")
        if policy.approval_check is not None and not ctx.approved:
            reason = policy.approval_check(args)
            if reason:
                raise ApprovalRequired(definition.name, args, reason)
