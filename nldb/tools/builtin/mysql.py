"""Built-in MySQL tool: the model writes SQL, the environment comes from the run context."""

from __future__ import annotations

import json
import re
import time
from typing import Any

from nldb.clients.mysql import MySQLClient
from nldb.tools.base import ToolCategory, ToolContext, tool

LAST_QUERY_KEY = "last_mysql_query"
DEFAULT_PREVIEW_ROWS = 3

_DROP_STATEMENT = re.compile(
    r"(?:^|;)\s*(DROP|TRUNCATE)\s+(?:TABLE\s+|DATABASE\s+|SCHEMA\s+)?(?:IF\s+EXISTS\s+)?`?([\w\-]*)",
    re.IGNORECASE,
)
_ALTER_STATEMENT = re.compile(
    r"(?:^|;)\s*ALTER\s+TABLE\s+`?([\w\-]+)`?[^;]*?\b(DROP|MODIFY|RENAME|CHANGE)\b", re.IGNORECASE
)


def clean_sql(raw: str) -> str:
    """Strip the JSON or quote wrappers models tend to put around a statement."""
    sql = raw.strip()
    if sql.startswith("{"):
        try:
            parsed = json.loads(sql)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, dict) and parsed.get("sql"):
            sql = str(parsed["sql"]).strip()
    if len(sql) >= 2 and sql[0] == sql[-1] and sql[0] in ("'", '"'):
        sql = sql[1:-1].strip()
    if sql.startswith("```"):
        sql = sql.strip("`").removeprefix("sql").strip()
    return sql


def is_select(sql: str) -> bool:
    head = sql.lstrip("( \n\t").upper()
    return head.startswith(("SELECT", "SHOW", "DESCRIBE", "DESC ", "WITH"))


def destructive_sql(sql: str) -> str | None:
    """Describe a statement that drops, truncates or restructures existing data, or None."""
    statement = clean_sql(sql)
    if match := _DROP_STATEMENT.search(statement):
        return f"{match.group(1).upper()} {match.group(2)}".strip()
    if match := _ALTER_STATEMENT.search(statement):
        return f"ALTER TABLE {match.group(1)} {match.group(2).upper()}"
    return None


def _sql_approval(args: dict[str, Any]) -> str | None:
    return destructive_sql(str(args.get("sql", "")))


@tool(
    name="run_sql",
    description=(
        "执行 MySQL SQL 语句，支持 SELECT / CREATE TABLE / INSERT / UPDATE / DELETE / ALTER。"
        "只需要输入 SQL 语句字符串，例如：SELECT * FROM users WHERE age > 20。"
        "DROP、TRUNCATE 以及删除、修改或重命名列的 ALTER 语句需要用户确认后才会执行"
    ),
    category=ToolCategory.MYSQL,
    approval_check=_sql_approval,
)
async def run_sql(sql: str, env_id: str | None = None, ctx: ToolContext | None = None) -> dict[str, Any]:
    statement = clean_sql(sql)
    if not env_id:
        raise ValueError("环境 ID 未设置")
    if not statement:
        raise ValueError("SQL 语句为空")

    client: MySQLClient = ctx.service("mysql")
    result = await client.run_sql(env_id, statement)

    if not is_select(statement):
        return {
            "success": True,
            "type": "execute",
            "affectedRows": result.affected_rows,
            "message": result.message or "SQL 执行成功",
        }

    # Full rows stay with this run; the model only sees a preview
    ctx.state[LAST_QUERY_KEY] = {
        "sql": statement,
        "columns": result.column_names,
        "rows": result.rows,
        "timestamp": time.time(),
    }
    preview_rows = int(ctx.metadata.get("preview_rows", DEFAULT_PREVIEW_ROWS))
    response: dict[str, Any] = {
        "success": True,
        "type": "query",
        "totalCount": len(result.rows),
        "columns": result.column_names,
        "preview": result.rows[:preview_rows],
    }
    if len(result.rows) > preview_rows:
        response["hint"] = f"共 {len(result.rows)} 条数据，已展示前 {preview_rows} 条"
    return response
