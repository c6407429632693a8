"""Tool execution engine."""

from __future__ import annotations

import inspect
import logging
from typing import Any

from nldb.tools.base import ToolContext, ToolDefinition, to_snake_case
from nldb.tools.policy import PolicyEngine, ToolPolicyError
from nldb.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


class ToolExecutionError(Exception):
    pass


class ToolExecutor:
    def __init__(self, policy_engine: PolicyEngine | None = None) -> None:
        self.policy_engine = policy_engine or PolicyEngine()

    def prepare_args(
        self, definition: ToolDefinition, args: dict[str, Any], ctx: ToolContext
    ) -> dict[str, Any]:
        """
        Map model-supplied arguments onto the handler signature.

        camelCase keys are converted to snake_case, unknown keys are dropped
        and a missing ``env_id`` is filled from the run context.
        """
        known = set(definition.parameter_names)
        prepared: dict[str, Any] = {}
        dropped: list[str] = []
        for key, value in args.items():
            name = to_snake_case(key)
            if name in known:
                prepared[name] = value
            else:
                dropped.append(key)
        if dropped:
            logger.debug(f"Dropped unknown arguments for {definition.name}: {dropped}")

        if "env_id" in known and not prepared.get("env_id") and ctx.env_id:
            prepared["env_id"] = ctx.env_id

        missing = [name for name in definition.required_parameters if name not in prepared]
        if missing:
            raise ToolExecutionError(f"Missing required arguments: {', '.join(missing)}")
        return prepared

    async def execute(self, name: str, args: dict[str, Any], ctx: ToolContext) -> dict[str, Any]:
        definition = ToolRegistry.get_definition(name)
        handler = ToolRegistry.get_handler(name)
        if not definition or not handler:
            raise ToolExecutionError(f"Unknown tool: {name}")

        prepared = self.prepare_args(definition, args, ctx)
        self.policy_engine.enforce(definition, prepared, ctx)

        ctx.log_action("tool_invoked", {"tool": name, "args": list(prepared.keys())})

        try:
            if "ctx" in inspect.signature(handler).parameters:
                result = handler(**prepared, ctx=ctx)
            else:
                result = handler(**prepared)

            if inspect.isawaitable(result):
                result = await result

            ctx.log_action("tool_completed", {"tool": name})
            return {
                "tool": name,
                "success": True,
                "result": result,
            }
        except ToolPolicyError:
            raise
        except Exception as exc:
            logger.error(f"Tool execution failed: {name} - {exc}")
            raise ToolExecutionError(str(exc)) from exc
