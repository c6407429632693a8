"""
MySQL access through the gateway's ``tcb/RunSql`` action.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any

from nldb.clients.capi import CapiClient

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z0-9_\-]{1,64}$")
_COLUMN_TYPE = re.compile(r"^[A-Za-z]+(?:\(\d+(?:,\s*\d+)?\))?(?:\s+UNSIGNED)?$", re.IGNORECASE)

TYPE_ALIASES = {
    "string": "VARCHAR(255)",
    "varchar": "VARCHAR(255)",
    "char": "CHAR(32)",
    "number": "DOUBLE",
    "integer": "INT",
    "boolean": "TINYINT(1)",
    "bool": "TINYINT(1)",
    "object": "JSON",
    "array": "JSON",
}


def quote_identifier(name: str) -> str:
    """Backtick-quote a table or column name after validating it."""
    if not name or not _IDENTIFIER.match(name):
        raise ValueError(f"Invalid SQL identifier: {name!r}")
    return f"`{name}`"


def column_type(name: str) -> str:
    """Map a loose type name (string, int, varchar(64)) to a MySQL column type."""
    normalized = name.strip()
    mapped = TYPE_ALIASES.get(normalized.lower(), normalized)
    if not _COLUMN_TYPE.match(mapped):
        raise ValueError(f"Invalid column type: {name!r}")
    return mapped.upper()


def sql_literal(value: Any) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (int, float)):
        return str(value)
    escaped = str(value).replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


@dataclass
class SqlResult:
    """Parsed RunSql response."""

    columns: list[dict[str, Any]] = field(default_factory=list)
    column_names: list[str] = field(default_factory=list)
    rows: list[list[Any]] = field(default_factory=list)
    affected_rows: int | None = None
    request_id: str | None = None
    message: str | None = None

    @property
    def has_rows(self) -> bool:
        return bool(self.columns or self.rows)

    def records(self) -> list[dict[str, Any]]:
        """Rows as dicts keyed by column name."""
        return [dict(zip(self.column_names, row, strict=False)) for row in self.rows]


def parse_run_sql_result(result: dict[str, Any] | None) -> SqlResult:
    """Decode ``Infos`` (JSON column descriptors) and ``Items`` (row values)."""
    if not result:
        return SqlResult(message="SQL 执行成功")

    columns: list[dict[str, Any]] = []
    for info in result.get("Infos") or []:
        try:
            columns.append(json.loads(info) if isinstance(info, str) else dict(info))
        except (json.JSONDecodeError, TypeError, ValueError):
            columns.append({"name": "unknown", "databaseType": "VARCHAR"})

    rows = []
    for item in result.get("Items") or []:
        if isinstance(item, str):
            try:
                item = json.loads(item)
            except json.JSONDecodeError:
                item = [item]
        rows.append(list(item.values()) if isinstance(item, dict) else list(item))

    parsed = SqlResult(
        columns=columns,
        column_names=[column.get("name", "unknown") for column in columns],
        rows=rows,
        affected_rows=result.get("RowsAffected"),
        request_id=result.get("RequestId"),
    )
    if not parsed.has_rows:
        parsed.message = "SQL 执行成功"
    return parsed


class MySQLClient:
    """Run SQL statements against an environment's default MySQL instance."""

    def __init__(self, capi: CapiClient):
        self.capi = capi

    async def run_sql(
        self,
        env_id: str,
        sql: str,
        instance_id: str = "default",
        schema: str | None = None,
    ) -> SqlResult:
        logger.info(
            "Running SQL",
            extra={"env_id": env_id, "sql": sql[:100] + ("..." if len(sql) > 100 else "")},
        )
        result = await self.capi.request(
            "tcb",
            "RunSql",
            {
                "EnvId": env_id,
                "Sql": sql,
                "DbInstance": {
                    "EnvId": env_id,
                    "InstanceId": instance_id,
                    "Schema": schema or env_id,
                },
            },
        )
        return parse_run_sql_result(result)
