"""Per-user preferences (selected environment and free-form settings)."""

from typing import Any

from nldb.storage.adapters import StorageAdapter


class UserPreferenceStore:
    """
    Preferences kept in a StorageAdapter.

    Keys: ``user:{user_id}:env`` holds the selected environment ID and
    ``user:{user_id}:preferences`` holds a dict merged by set_preferences().
    """

    def __init__(self, storage: StorageAdapter):
        self.storage = storage

    @staticmethod
    def _env_key(user_id: str) -> str:
        return f"user:{user_id}:env"

    @staticmethod
    def _prefs_key(user_id: str) -> str:
        return f"user:{user_id}:preferences"

    async def set_env(self, user_id: str, env_id: str) -> None:
        await self.storage.set(self._env_key(user_id), env_id)

    async def get_env(self, user_id: str) -> str | None:
        return await self.storage.get(self._env_key(user_id))

    async def clear_env(self, user_id: str) -> None:
        await self.storage.delete(self._env_key(user_id))

    async def get_preferences(self, user_id: str) -> dict[str, Any]:
        return await self.storage.get(self._prefs_key(user_id)) or {}

    async def set_preferences(self, user_id: str, preferences: dict[str, Any]) -> dict[str, Any]:
        merged = {**await self.get_preferences(user_id), **preferences}
        await self.storage.set(self._prefs_key(user_id), merged)
        return merged

    async def clear_preferences(self, user_id: str) -> None:
        await self.storage.delete(self._prefs_key(user_id))
        await self.storage.delete(self._env_key(user_id))
