"""
Intent classification.

Classifiers map a chat message (plus enriched conversation context) to an
IntentResult. Two implementations share the IntentClassifier interface:

- LLMIntentClassifier renders a few-shot prompt and parses the first JSON
  object in the model output.
- RuleBasedClassifier runs ordered keyword rules and regex parameter
  extraction; it needs no network access.

ChainedIntentClassifier runs stages in order and moves on when a stage
raises, so an LLM outage and a garbled LLM answer degrade the same way.
create_classifier() builds the pipeline selected by CLASSIFIER_MODE.
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any

from nldb.config import Settings
from nldb.llm.base import BaseLLMProvider
from nldb.models.agent import ClassificationError, IntentResult, IntentType
from nldb.prompts.loader import PromptLoader

logger = logging.getLogger(__name__)

INTENT_DESCRIPTIONS: dict[IntentType, dict[str, Any]] = {
    IntentType.QUERY_DATABASE: {
        "keywords": ["查询", "查找", "检索", "显示", "列出", "查看", "获取"],
        "description": "用户想要查询、查找、检索、显示、列出数据库中的数据",
    },
    IntentType.INSERT_DOCUMENT: {
        "keywords": ["新增文档", "添加文档", "插入文档", "加一条", "新增一条", "插入数据"],
        "description": "用户想要往表里添加一条新记录，注意：这是添加新的一行数据，不是给现有数据加字段",
    },
    IntentType.MODIFY_FIELD: {
        "keywords": ["加字段", "添加字段", "新增字段", "删除字段", "改名", "重命名", "改类型"],
        "description": "用户想要修改表结构：给所有记录新增/删除/重命名字段，或修改字段类型",
    },
    IntentType.CREATE_COLLECTION: {
        "keywords": ["创建", "新建", "建表", "建集合"],
        "description": "用户想要创建新的表或集合",
    },
    IntentType.DELETE_COLLECTION: {
        "keywords": ["删除", "移除", "删表", "删集合"],
        "description": "用户想要删除整个表或集合",
    },
    IntentType.ANALYZE_DATA: {
        "keywords": ["分析", "统计", "对比", "汇总", "聚合"],
        "description": "用户想要分析、统计、对比数据",
    },
    IntentType.DOC_QUESTION: {
        "keywords": ["如何", "怎么", "文档", "SDK", "怎样", "教程"],
        "description": "用户想要了解如何使用 SDK、查看文档、学习教程",
    },
    IntentType.GENERAL_CHAT: {
        "keywords": ["你好", "谢谢", "再见", "帮助"],
        "description": "打招呼、闲聊、礼貌用语",
    },
}

FEW_SHOT_EXAMPLES = [
    {"input": "查询 users 表", "output": {"type": "QUERY_DATABASE", "params": {"table": "users", "dbType": "flexdb"}}},
    {
        "input": "给 test 表加上一个 test3: test66",
        "output": {
            "type": "MODIFY_FIELD",
            "params": {"table": "test", "field": "test3", "action": "add_field", "defaultValue": "test66"},
        },
    },
    {
        "input": "把 users 表的 age 字段改成 bigint",
        "output": {
            "type": "MODIFY_FIELD",
            "params": {"table": "users", "field": "age", "action": "change_type", "newType": "bigint"},
        },
    },
    {
        "input": "删除 test 表的 oldField 字段",
        "output": {
            "type": "MODIFY_FIELD",
            "params": {"table": "test", "field": "oldField", "action": "delete_field"},
        },
    },
    {
        "input": "给 test 表加上一个文档，内容是 test22:test22，test33:test33",
        "output": {
            "type": "INSERT_DOCUMENT",
            "params": {"table": "test", "data": {"test22": "test22", "test33": "test33"}},
        },
    },
    {
        "input": "如何连接 MongoDB？",
        "output": {"type": "DOC_QUESTION", "params": {"question": "如何连接 MongoDB？"}},
    },
]

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


class IntentClassifier(ABC):
    """Interface shared by every classifier stage."""

    name: str = "classifier"

    @abstractmethod
    async def classify(self, message: str, context: dict[str, Any] | None = None) -> IntentResult:
        """Classify a message; raise ClassificationError when no answer can be given."""
        pass  # pragma: no cover - abstract method


class LLMIntentClassifier(IntentClassifier):
    """Few-shot LLM classifier returning the JSON the prompt asks for."""

    name = "llm"

    def __init__(
        self,
        llm: BaseLLMProvider,
        prompts: PromptLoader | None = None,
        temperature: float = 0.1,
    ):
        self.llm = llm
        self.prompts = prompts or PromptLoader()
        self.temperature = temperature

    def build_prompt(self, message: str, context: dict[str, Any] | None = None) -> str:
        intents = [
            {"type": intent.value, **description}
            for intent, description in INTENT_DESCRIPTIONS.items()
        ]
        return self.prompts.render(
            "intent/classify.md",
            message=message,
            context=context or {},
            intents=intents,
            examples=FEW_SHOT_EXAMPLES,
        )

    async def classify(self, message: str, context: dict[str, Any] | None = None) -> IntentResult:
        prompt = self.build_prompt(message, context)
        try:
            content = await self.llm.complete(prompt, temperature=self.temperature)
        except Exception as e:
            raise ClassificationError("LLMIntentClassifier", f"LLM call failed: {e}") from e
        return self.parse_response(content)

    def parse_response(self, content: str) -> IntentResult:
        """
        Parse the first JSON object in the model output.

        Missing confidence defaults to 0.8 and missing params to an empty dict.

        Raises:
            ClassificationError: No JSON, invalid JSON or an unknown intent type
        """
        match = _JSON_OBJECT.search(content or "")
        if not match:
            raise ClassificationError("LLMIntentClassifier", "No JSON found in response")

        try:
            parsed = json.loads(match.group(0))
            intent_type = IntentType(str(parsed.get("type", "")).upper())
        except (json.JSONDecodeError, ValueError, AttributeError) as e:
            raise ClassificationError(
                "LLMIntentClassifier",
                f"Unparseable classification: {e}",
                context={"response": content[:200]},
            ) from e

        params = parsed.get("params") or {}
        if not isinstance(params, dict):
            params = {}
        confidence = parsed.get("confidence") or 0.8
        try:
            confidence = min(max(float(confidence), 0.0), 1.0)
        except (TypeError, ValueError):
            confidence = 0.8

        return IntentResult(
            type=intent_type, confidence=confidence, params=params, classifier=self.name
        )


# ============================================================================
# Keyword rules
# ============================================================================

QUERY_PATTERN = re.compile(r"查询|查找|检索|显示|列出|查看")
INSERT_PATTERN = re.compile(r"插入|新增一条|添加一条|加一条|新增文档|添加文档|新增记录|添加记录|加上一个文档")
MODIFY_PATTERN = re.compile(
    r"修改|更改|调整|加字段|添加字段|新增字段|改名|重命名|改类型|加上一个"
    r"|(?:删除|移除|删掉).*字段|字段.*(?:改成|改为)"
)
CREATE_PATTERN = re.compile(r"创建|新建")
DELETE_PATTERN = re.compile(r"删除|移除")
ANALYZE_PATTERN = re.compile(r"分析|统计|对比")
DOC_PATTERN = re.compile(r"如何|怎么|文档|sdk", re.IGNORECASE)

RULES: list[tuple[IntentType, re.Pattern[str]]] = [
    (IntentType.QUERY_DATABASE, QUERY_PATTERN),
    (IntentType.INSERT_DOCUMENT, INSERT_PATTERN),
    (IntentType.MODIFY_FIELD, MODIFY_PATTERN),
    (IntentType.CREATE_COLLECTION, CREATE_PATTERN),
    (IntentType.DELETE_COLLECTION, DELETE_PATTERN),
    (IntentType.ANALYZE_DATA, ANALYZE_PATTERN),
    (IntentType.DOC_QUESTION, DOC_PATTERN),
]

# Identifiers are ASCII word characters plus '-', never CJK text
_ID = r"[\w-]+"
TABLE_PATTERN = re.compile(
    rf"给\s*({_ID})\s*表|表\s*[：:\"]?\s*({_ID})|({_ID})\s*表|表的内容\s*({_ID})"
    rf"|查询\s*({_ID})|集合\s*({_ID})|({_ID})\s*集合",
    re.ASCII,
)
ENV_ID_PATTERN = re.compile(
    rf"环境\s*ID\s*[是为:：]?\s*({_ID})|envId\s*[是为:：]?\s*({_ID})|env-id\s*[：:]\s*({_ID})",
    re.ASCII | re.IGNORECASE,
)
KV_PAIR_PATTERN = re.compile(rf"({_ID})\s*[：:]\s*([^\s,，]+)", re.ASCII)
MULTI_KV_PATTERN = re.compile(
    rf"({_ID})\s*[：:]\s*([^\s,，]+)(?:\s*[,，]\s*({_ID})\s*[：:]\s*([^\s,，]+))+", re.ASCII
)
RENAME_PATTERN = re.compile(rf"({_ID})\s*字段\s*(?:改名为?|重命名为?|改为|改成)\s*({_ID})", re.ASCII)
RENAME_PREFIX_PATTERN = re.compile(
    rf"重命名\s*(?:{_ID}\s*表的?\s*)?({_ID})\s*字段\s*为\s*({_ID})", re.ASCII
)
TYPE_CHANGE_PATTERN = re.compile(
    rf"({_ID})\s*字段\s*(?:的\s*)?(?:类型\s*)?(?:改成|改为|修改为|类型改为)\s*({_ID})", re.ASCII
)
DELETE_FIELD_PATTERN = re.compile(
    rf"(?:删除|移除|删掉)\s*(?:{_ID}\s*(?:表|集合)的?\s*)?({_ID})\s*字段", re.ASCII
)
ADD_FIELD_PATTERN = re.compile(r"加字段|新增字段|添加字段|加上一个|加一个字段")
RECORD_HINT_PATTERN = re.compile(r"文档|记录|一条")
CONTEXT_REFERENCE_PATTERN = re.compile(r"刚才|那个表|这个表|再查|同样|上一个")

FIELD_TYPES = frozenset(
    {
        "string", "number", "boolean", "bool", "int", "integer", "bigint", "smallint",
        "tinyint", "float", "double", "decimal", "varchar", "char", "text", "date",
        "datetime", "timestamp", "json", "object", "array",
    }
)


def _coerce_value(raw: str) -> Any:
    """Turn obvious literals ('18', 'true') into Python values; keep everything else as text."""
    value = raw.strip().strip("'\"")
    lowered = value.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    if re.fullmatch(r"-?\d+", value):
        return int(value)
    if re.fullmatch(r"-?\d+\.\d+", value):
        return float(value)
    return value


def extract_params(message: str, context: dict[str, Any] | None = None) -> dict[str, Any]:
    """Extract table, backend, environment and field-mutation details from a message."""
    params: dict[str, Any] = {}
    lowered = message.lower()

    if "flexdb" in lowered:
        params["dbType"] = "flexdb"
    elif "mysql" in lowered:
        params["dbType"] = "mysql"
    elif "mongo" in lowered:
        params["dbType"] = "mongodb"

    if match := TABLE_PATTERN.search(message):
        params["table"] = next(group for group in match.groups() if group)
    elif context and context.get("lastTable") and CONTEXT_REFERENCE_PATTERN.search(message):
        params["table"] = context["lastTable"]

    if match := ENV_ID_PATTERN.search(message):
        params["envId"] = next(group for group in match.groups() if group)

    if MULTI_KV_PATTERN.search(message):
        params["data"] = {
            key: _coerce_value(value) for key, value in KV_PAIR_PATTERN.findall(message)
        }
    elif match := KV_PAIR_PATTERN.search(message):
        key, value = match.group(1), _coerce_value(match.group(2))
        if RECORD_HINT_PATTERN.search(message):
            params["data"] = {key: value}
        else:
            params["field"] = key
            params["defaultValue"] = value
            if ADD_FIELD_PATTERN.search(message):
                params["action"] = "add_field"

    rename = RENAME_PATTERN.search(message) or RENAME_PREFIX_PATTERN.search(message)
    if rename:
        params["field"], params["newName"] = rename.group(1), rename.group(2)
        params["action"] = "rename"

    # "age 字段改成 bigint" reads like a rename; a type keyword or a known type name wins
    if type_change := TYPE_CHANGE_PATTERN.search(message):
        target = type_change.group(2)
        if "类型" in message or target.lower() in FIELD_TYPES:
            params.pop("newName", None)
            params["field"], params["newType"] = type_change.group(1), target
            params["action"] = "change_type"

    if delete_field := DELETE_FIELD_PATTERN.search(message):
        params["field"] = delete_field.group(1)
        params["action"] = "delete_field"

    return params


class RuleBasedClassifier(IntentClassifier):
    """Ordered keyword rules; first match wins with confidence 0.7."""

    name = "rules"
    MATCH_CONFIDENCE = 0.7
    DEFAULT_CONFIDENCE = 0.5

    async def classify(self, message: str, context: dict[str, Any] | None = None) -> IntentResult:
        return self.classify_sync(message, context)

    def classify_sync(self, message: str, context: dict[str, Any] | None = None) -> IntentResult:
        for intent_type, pattern in RULES:
            if not pattern.search(message):
                continue
            if intent_type == IntentType.DOC_QUESTION:
                params = {"question": message}
            else:
                params = extract_params(message, context)
            return IntentResult(
                type=intent_type,
                confidence=self.MATCH_CONFIDENCE,
                params=params,
                classifier=self.name,
            )

        return IntentResult(
            type=IntentType.GENERAL_CHAT,
            confidence=self.DEFAULT_CONFIDENCE,
            params={},
            classifier=self.name,
        )


class ChainedIntentClassifier(IntentClassifier):
    """Run classifier stages in order until one produces an intent."""

    name = "chain"

    def __init__(self, stages: list[IntentClassifier]):
        if not stages:
            raise ValueError("ChainedIntentClassifier needs at least one stage")
        self.stages = stages

    async def classify(self, message: str, context: dict[str, Any] | None = None) -> IntentResult:
        last_error: Exception | None = None
        for stage in self.stages:
            try:
                result = await stage.classify(message, context)
            except Exception as e:
                last_error = e
                logger.warning(
                    f"Classifier stage {stage.name} failed, trying next stage",
                    extra={"stage": stage.name, "error": str(e)},
                )
                continue

            logger.info(
                "Classified message",
                extra={
                    "stage": stage.name,
                    "intent": result.type.value,
                    "confidence": result.confidence,
                },
            )
            return result

        raise ClassificationError(
            "ChainedIntentClassifier", f"All classifier stages failed: {last_error}"
        )


def create_classifier(
    settings: Settings,
    llm: BaseLLMProvider | None = None,
    prompts: PromptLoader | None = None,
) -> IntentClassifier:
    """Build the classifier pipeline selected by CLASSIFIER_MODE."""
    rules = RuleBasedClassifier()
    if settings.classifier.mode == "rules" or llm is None:
        logger.info("Using rule-based intent classifier")
        return rules

    logger.info("Using LLM intent classifier with rule-based fallback")
    return ChainedIntentClassifier(
        [
            LLMIntentClassifier(llm, prompts=prompts, temperature=settings.classifier.temperature),
            rules,
        ]
    )
