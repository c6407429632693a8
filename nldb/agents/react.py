"""
ReAct Runner

LangGraph state machine that alternates between a *reason* node (ask the
LLM for the next Thought/Action or a Final Answer) and an *act* node
(execute the chosen tool through the ToolExecutor). The loop stops on a
final answer or after ``max_iterations`` tool invocations.

Flow:
    reason → act → reason → ... → END
"""

import json
import logging
import re
from typing import Any, TypedDict

from langgraph.graph import END, StateGraph

from nldb.llm.base import BaseLLMProvider
from nldb.models.agent import ReActParseError
from nldb.prompts import PromptLoader
from nldb.tools import ToolCategory, ToolContext, ToolExecutionError, ToolExecutor, ToolRegistry
from nldb.tools.base import ToolDefinition
from nldb.tools.policy import ApprovalRequired, ToolPolicyError

logger = logging.getLogger(__name__)

MAX_ITERATIONS_OUTPUT = "Agent stopped due to max iterations."
FINAL_ANSWER = "Final Answer:"
OBSERVATION_STOP = ["\nObservation:"]

_ACTION_RE = re.compile(
    r"Action\s*\d*\s*:[\s]*(.*?)[\s]*Action\s*\d*\s*Input\s*\d*\s*:[\s]*(.*)", re.DOTALL
)


class ReActState(TypedDict, total=False):
    """State carried between reason and act nodes."""

    input: str
    ctx: ToolContext
    prompt_vars: dict[str, Any]
    steps: list[dict[str, Any]]
    pending: dict[str, Any] | None
    iterations: int
    output: str | None
    llm_calls: int
    approval: dict[str, Any] | None


def parse_react_output(text: str) -> dict[str, Any]:
    """
    Parse one LLM turn.

    Returns:
        ``{"final": answer}`` or ``{"tool": name, "tool_input": raw, "log": text}``

    Raises:
        ReActParseError: Neither an action nor a final answer was found
    """
    match = _ACTION_RE.search(text)
    if match:
        # An action wins over a final answer emitted in the same turn: the
        # model has not seen the observation yet
        tool_name = match.group(1).strip().strip("`").strip()
        tool_input = match.group(2).strip()
        tool_input = tool_input.split("\nObservation", 1)[0].strip()
        return {"tool": tool_name, "tool_input": tool_input, "log": text}

    if FINAL_ANSWER in text:
        return {"final": text.split(FINAL_ANSWER, 1)[1].strip()}

    raise ReActParseError(
        agent="ReActRunner",
        message=f"Could not parse LLM output: `{text[:200]}`",
        context={"output": text},
    )


def parse_tool_input(definition: ToolDefinition, raw: str) -> dict[str, Any]:
    """
    Decode an Action Input.

    JSON objects are used as keyword arguments. Anything else is passed as
    the single required parameter when the tool has exactly one (``run_sql``
    takes the bare statement).
    """
    text = raw.strip()
    if text.startswith("```"):
        text = text.strip("`").removeprefix("json").strip()

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        parsed = None

    if isinstance(parsed, dict):
        return parsed

    required = definition.required_parameters
    if len(required) == 1:
        return {required[0]: text}
    raise ToolExecutionError(f"Action Input for {definition.name} must be a JSON object")


def format_tools(definitions: list[ToolDefinition]) -> str:
    lines = []
    for definition in definitions:
        args = json.dumps(definition.parameters_schema.get("properties", {}), ensure_ascii=False)
        lines.append(f"{definition.name}: {definition.description}, args: {args}")
    return "\n".join(lines)


def build_scratchpad(steps: list[dict[str, Any]]) -> str:
    parts = []
    for step in steps:
        parts.append(f"{step['log']}\nObservation: {step['observation']}\nThought: ")
    return "".join(parts)


class ReActRunner:
    """
    Run a ReAct loop over one tool category.

    Attributes:
        llm: Provider used for reasoning
        executor: Tool executor enforcing policies and argument mapping
        prompt_path: Template rendered on every reasoning turn
        category: Tool category exposed to the model
        max_iterations: Tool invocations allowed before the loop is cut off
    """

    def __init__(
        self,
        llm: BaseLLMProvider,
        executor: ToolExecutor,
        prompts: PromptLoader,
        prompt_path: str,
        category: ToolCategory,
        max_iterations: int = 5,
        temperature: float = 0.1,
    ):
        self.llm = llm
        self.executor = executor
        self.prompts = prompts
        self.prompt_path = prompt_path
        self.category = category
        self.max_iterations = max_iterations
        self.temperature = temperature
        self.graph = self._build_graph()

    @property
    def tools(self) -> list[ToolDefinition]:
        return [
            definition
            for definition in ToolRegistry.list_definitions(self.category)
            if definition.policy.enabled
        ]

    def _build_graph(self):
        workflow = StateGraph(ReActState)
        workflow.add_node("reason", self._run_reason)
        workflow.add_node("act", self._run_act)
        workflow.set_entry_point("reason")
        workflow.add_conditional_edges(
            "reason",
            self._should_act,
            {"act": "act", "end": END},
        )
        workflow.add_edge("act", "reason")
        return workflow.compile()

    async def run(
        self,
        message: str,
        ctx: ToolContext,
        prompt_vars: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Execute the loop for one message.

        Returns:
            ``{"output", "intermediate_steps", "iterations", "llm_calls",
            "approval_required"}``; ``approval_required`` is set when a tool
            call was held back for user confirmation

        Raises:
            ReActParseError: The model produced an unparseable turn
        """
        initial_state: ReActState = {
            "input": message,
            "ctx": ctx,
            "prompt_vars": prompt_vars or {},
            "steps": [],
            "pending": None,
            "iterations": 0,
            "output": None,
            "llm_calls": 0,
            "approval": None,
        }
        # Each iteration is two graph steps plus the final reasoning turn
        config = {"recursion_limit": self.max_iterations * 2 + 5}
        result = await self.graph.ainvoke(initial_state, config=config)

        logger.info(
            "ReAct loop finished",
            extra={
                "category": str(self.category),
                "iterations": result.get("iterations", 0),
                "llm_calls": result.get("llm_calls", 0),
            },
        )
        return {
            "output": result.get("output") or "",
            "intermediate_steps": result.get("steps", []),
            "iterations": result.get("iterations", 0),
            "llm_calls": result.get("llm_calls", 0),
            "approval_required": result.get("approval"),
        }

    async def _run_reason(self, state: ReActState) -> ReActState:
        if state.get("approval"):
            state["output"] = state["approval"]["reason"]
            state["pending"] = None
            return state

        if state.get("iterations", 0) >= self.max_iterations:
            logger.warning(
                "ReAct loop hit iteration ceiling",
                extra={"max_iterations": self.max_iterations},
            )
            state["output"] = MAX_ITERATIONS_OUTPUT
            state["pending"] = None
            return state

        tools = self.tools
        prompt = self.prompts.render(
            self.prompt_path,
            tools=format_tools(tools),
            tool_names=", ".join(definition.name for definition in tools),
            input=state["input"],
            agent_scratchpad=build_scratchpad(state.get("steps", [])),
            **state.get("prompt_vars", {}),
        )
        text = await self.llm.complete(
            prompt, temperature=self.temperature, stop=OBSERVATION_STOP
        )
        state["llm_calls"] = state.get("llm_calls", 0) + 1

        parsed = parse_react_output(text)
        if "final" in parsed:
            state["output"] = parsed["final"]
            state["pending"] = None
        else:
            state["pending"] = parsed
        return state

    async def _run_act(self, state: ReActState) -> ReActState:
        action = state["pending"] or {}
        tool_name = action.get("tool", "")
        definition = ToolRegistry.get_definition(tool_name)
        step = {
            "tool": tool_name,
            "tool_input": action.get("tool_input", ""),
            "log": action.get("log", ""),
            "success": False,
            "result": None,
        }

        allowed = {tool.name for tool in self.tools}
        if definition is None or tool_name not in allowed:
            step["observation"] = f"{tool_name} is not a valid tool, try another one."
        else:
            try:
                args = parse_tool_input(definition, step["tool_input"])
                executed = await self.executor.execute(tool_name, args, state["ctx"])
                step["result"] = executed["result"]
                step["success"] = bool(
                    not isinstance(executed["result"], dict)
                    or executed["result"].get("success", True)
                )
                step["observation"] = json.dumps(
                    executed["result"], ensure_ascii=False, default=str
                )
            except ApprovalRequired as e:
                logger.info(
                    f"Tool {tool_name} held for confirmation",
                    extra={"tool": tool_name, "reason": e.reason},
                )
                state["approval"] = {"tool": e.tool, "args": e.tool_args, "reason": e.reason}
                step["observation"] = json.dumps(
                    {"success": False, "confirmation_required": e.reason}, ensure_ascii=False
                )
            except (ToolExecutionError, ToolPolicyError) as e:
                logger.warning(
                    f"Tool {tool_name} failed",
                    extra={"tool": tool_name, "error": str(e)},
                )
                step["observation"] = json.dumps(
                    {"success": False, "error": str(e)}, ensure_ascii=False
                )

        state["steps"] = [*state.get("steps", []), step]
        state["iterations"] = state.get("iterations", 0) + 1
        state["pending"] = None
        return state

    def _should_act(self, state: ReActState) -> str:
        if state.get("output") is not None:
            return "end"
        if state.get("pending"):
            return "act"
        return "end"
