"""
Operation Agent

Fallback for the document tool agent. Retrieves the most relevant
documentation chunks, asks the LLM for exactly one structured
DocumentOperation (JSON, never code), validates it and runs it against
the document store.

Flow:
    retrieve docs → render operation prompt → extract JSON → validate → execute
"""

import json
import logging
import re
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from nldb.agents.base import BaseAgent
from nldb.clients.document_store import BaseDocumentStore, destructive_update
from nldb.knowledge import RAGService
from nldb.llm.base import BaseLLMProvider
from nldb.models.agent import AgentRequest, AgentResponse, OperationError
from nldb.prompts import PromptLoader

logger = logging.getLogger(__name__)

ALLOWED_OPERATORS = frozenset(
    {"$eq", "$ne", "$gt", "$gte", "$lt", "$lte", "$in", "$nin", "$exists", "$regex"}
)
_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_\-]*$")
_FENCED_JSON = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
_BARE_JSON = re.compile(r"\{[\s\S]*\}")


def validate_filter(where: dict[str, Any]) -> dict[str, Any]:
    """Reject top-level operators and any operator outside the allow-list."""
    for field, condition in where.items():
        if field.startswith("$"):
            raise ValueError(f"Operator {field} is not allowed at field level")
        if isinstance(condition, dict) and any(key.startswith("$") for key in condition):
            for operator in condition:
                if operator not in ALLOWED_OPERATORS:
                    raise ValueError(f"Operator {operator} is not allowed")
    return where


class SortSpec(BaseModel):
    field: str
    direction: Literal["asc", "desc"] = "asc"


class DocumentOperation(BaseModel):
    """One validated document store operation produced by the LLM."""

    operation: Literal["query", "insert", "update", "delete", "count"]
    collection: str
    filter: dict[str, Any] = Field(default_factory=dict)
    data: dict[str, Any] | None = None
    limit: int = Field(default=100, gt=0, le=1000)
    skip: int = Field(default=0, ge=0)
    order_by: list[SortSpec] = Field(default_factory=list)

    @field_validator("collection")
    @classmethod
    def validate_collection(cls, v: str) -> str:
        if not _IDENTIFIER.match(v):
            raise ValueError(f"Invalid collection name: {v!r}")
        return v

    @field_validator("filter", mode="before")
    @classmethod
    def validate_where(cls, v: Any) -> dict[str, Any]:
        if v is None:
            return {}
        if not isinstance(v, dict):
            raise ValueError("filter must be an object")
        return validate_filter(v)

    @field_validator("order_by", mode="before")
    @classmethod
    def normalize_order_by(cls, v: Any) -> list[Any]:
        if v is None:
            return []
        return v if isinstance(v, list) else [v]

    @model_validator(mode="after")
    def validate_data(self) -> "DocumentOperation":
        if self.operation in ("insert", "update") and not self.data:
            raise ValueError(f"{self.operation} requires a non-empty data object")
        return self


def extract_operation_json(text: str) -> dict[str, Any]:
    """Return the first fenced JSON block, falling back to the first bare object."""
    match = _FENCED_JSON.search(text) or _BARE_JSON.search(text)
    if not match:
        raise OperationError("OperationAgent", "LLM response contained no JSON operation")
    raw = match.group(1) if match.re is _FENCED_JSON else match.group(0)
    try:
        parsed = json.loads(raw.strip())
    except json.JSONDecodeError as e:
        raise OperationError(
            "OperationAgent", f"Invalid operation JSON: {e}", context={"raw": raw[:500]}
        ) from e
    if not isinstance(parsed, dict):
        raise OperationError("OperationAgent", "Operation JSON must be an object")
    return parsed


def parse_operation(text: str) -> DocumentOperation:
    payload = extract_operation_json(text)
    try:
        return DocumentOperation.model_validate(payload)
    except PydanticValidationError as e:
        raise OperationError(
            "OperationAgent",
            f"Invalid operation: {e.errors()[0]['msg']}",
            recoverable=False,
            context={"operation": payload},
        ) from e


class OperationAgent(BaseAgent):
    """
    Documentation-grounded fallback that plans a single typed operation.

    ``delete`` is never executed directly; it comes back as a
    confirmation request for the ``delete_documents`` operation. Updates that
    unset or rename fields come back the same way as ``update_documents``.
    """

    def __init__(
        self,
        rag: RAGService,
        llm: BaseLLMProvider,
        store: BaseDocumentStore,
        prompts: PromptLoader,
        top_k: int = 5,
    ):
        super().__init__(name="OperationAgent")
        self.rag = rag
        self.llm = llm
        self.store = store
        self.prompts = prompts
        self.top_k = top_k

    async def execute(self, request: AgentRequest) -> AgentResponse:
        env_id = request.env_id
        if not env_id:
            raise OperationError(self.name, "未配置环境 ID", recoverable=False)

        docs = await self.rag.retrieve(request.message, self.top_k)
        if not docs:
            return AgentResponse(
                type="error",
                message="抱歉，没有找到相关的 API 文档，无法生成操作。",
                suggestions=["查看文档", "尝试其他操作"],
            )

        prompt = self.prompts.render(
            "agents/operation.md",
            operators=sorted(ALLOWED_OPERATORS),
            env_id=env_id,
            last_table=request.context.get("lastTable"),
            documents=[{"title": doc.source, "content": doc.content} for doc in docs],
            query=request.message,
        )
        text = await self.llm.complete(prompt, temperature=0.1)
        self._track_llm_call()

        operation = parse_operation(text)
        sources = [doc.source for doc in docs[:3]]
        logger.info(
            "Planned document operation",
            extra={"operation": operation.operation, "collection": operation.collection},
        )

        if operation.operation == "delete":
            return AgentResponse(
                type="confirmation_required",
                message=(
                    f"⚠️ 即将删除集合 {operation.collection} 中符合条件 "
                    f"{json.dumps(operation.filter, ensure_ascii=False)} 的文档，此操作不可恢复，请确认。"
                ),
                metadata={
                    "operation": "delete_documents",
                    "table": operation.collection,
                    "where": operation.filter,
                    "dbType": "flexdb",
                    "envId": env_id,
                    "sources": sources,
                },
            )

        risk = destructive_update(operation.data) if operation.operation == "update" else None
        if risk:
            return AgentResponse(
                type="confirmation_required",
                message=f"⚠️ 即将更新集合 {operation.collection}：{risk}，此操作不可恢复，请确认。",
                metadata={
                    "operation": "update_documents",
                    "args": {
                        "collection": operation.collection,
                        "where": operation.filter,
                        "data": operation.data,
                        "env_id": env_id,
                    },
                    "table": operation.collection,
                    "dbType": "flexdb",
                    "envId": env_id,
                    "sources": sources,
                    "risks": [risk],
                },
            )

        data = await self._run(env_id, operation)
        rendered = json.dumps(operation.model_dump(exclude_none=True), ensure_ascii=False, indent=2)
        return AgentResponse(
            type="operation_result",
            message=f"✅ 操作成功！\n\n**执行的操作：**\n```json\n{rendered}\n```",
            data=data,
            metadata={
                "dbType": "flexdb",
                "table": operation.collection,
                "operation": operation.operation,
                "sources": sources,
            },
            suggestions=["继续操作", "查询数据"],
        )

    async def _run(self, env_id: str, op: DocumentOperation) -> Any:
        if op.operation == "query":
            return await self.store.query(
                env_id,
                op.collection,
                where=op.filter,
                limit=op.limit,
                skip=op.skip,
                order_by=[sort.model_dump() for sort in op.order_by],
            )
        if op.operation == "count":
            return {"count": await self.store.count(env_id, op.collection, op.filter)}
        if op.operation == "insert":
            inserted_id = await self.store.insert(env_id, op.collection, op.data or {})
            return {"insertedId": inserted_id, "data": op.data}
        updated = await self.store.update(env_id, op.collection, op.filter, op.data or {})
        return {"updatedCount": updated}
