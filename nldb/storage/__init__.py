"""Key-value storage for conversation history and user preferences."""

from nldb.storage.adapters import (
    FileStorage,
    MemoryStorage,
    RedisStorage,
    StorageAdapter,
    create_storage,
)
from nldb.storage.preferences import UserPreferenceStore

__all__ = [
    "FileStorage",
    "MemoryStorage",
    "RedisStorage",
    "StorageAdapter",
    "UserPreferenceStore",
    "create_storage",
]
