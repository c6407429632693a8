"""
Conversation Context

Keeps a bounded per-session history in the storage adapter and derives
the context fields agents rely on (environment, last table, last db type).
"""

import logging
from datetime import UTC, datetime
from typing import Any

from nldb.models.agent import AgentResponse, ContextEntry, IntentResult
from nldb.storage import StorageAdapter, UserPreferenceStore

logger = logging.getLogger(__name__)

DEFAULT_SESSION = "default"


class ContextManager:
    """
    Session history and context enrichment.

    Attributes:
        history_size: Entries kept per session
        context_window: Most recent entries exposed as ``history``
    """

    def __init__(
        self,
        storage: StorageAdapter,
        preferences: UserPreferenceStore | None = None,
        default_env_id: str | None = None,
        history_size: int = 10,
        context_window: int = 5,
    ):
        self.storage = storage
        self.preferences = preferences
        self.default_env_id = default_env_id
        self.history_size = history_size
        self.context_window = context_window

    @staticmethod
    def _key(session_id: str) -> str:
        return f"context:{session_id}"

    async def enrich(
        self, context: dict[str, Any] | None = None, user_id: str | None = None
    ) -> dict[str, Any]:
        """Return a copy of ``context`` with session, environment and history fields filled in."""
        enriched: dict[str, Any] = {
            **(context or {}),
            "timestamp": datetime.now(UTC).isoformat(),
        }
        session_id = enriched.get("sessionId") or DEFAULT_SESSION
        enriched["sessionId"] = session_id
        if user_id:
            enriched.setdefault("userId", user_id)

        if not enriched.get("envId"):
            env_id = None
            if self.preferences is not None and user_id:
                env_id = await self.preferences.get_env(user_id)
            enriched["envId"] = env_id or self.default_env_id or ""

        history = await self.get_history(session_id)
        enriched["history"] = [
            entry.model_dump(mode="json") for entry in history[-self.context_window :]
        ]

        if history:
            enriched["lastQuery"] = history[-1].message
        for field, key in (("lastTable", "table"), ("lastDbType", "dbType")):
            if enriched.get(field):
                continue
            for entry in reversed(history):
                value = entry.intent.params.get(key) if entry.intent else None
                if value:
                    enriched[field] = value
                    break

        return enriched

    async def save(
        self,
        session_id: str,
        message: str,
        intent: IntentResult | None,
        result: AgentResponse | None,
    ) -> None:
        """Append one turn and trim the session to ``history_size`` entries."""
        key = self._key(session_id or DEFAULT_SESSION)
        history = await self.storage.get(key) or []
        history.append(
            ContextEntry(message=message, intent=intent, result=result).model_dump(mode="json")
        )
        await self.storage.set(key, history[-self.history_size :])
        logger.debug(
            "Saved conversation turn",
            extra={"session_id": session_id, "entries": min(len(history), self.history_size)},
        )

    async def get_history(self, session_id: str = DEFAULT_SESSION) -> list[ContextEntry]:
        raw = await self.storage.get(self._key(session_id)) or []
        return [ContextEntry.model_validate(entry) for entry in raw]

    async def clear(self, session_id: str = DEFAULT_SESSION) -> None:
        await self.storage.delete(self._key(session_id))
        logger.info("Cleared conversation history", extra={"session_id": session_id})
