from .base import GROUP_HISTORY, NEW_ENTRIES, Entry, LogStore
from .memory import InMemoryLogStore
from .redis_store import RedisLogStore

__all__ = [
    "Entry",
    "GROUP_HISTORY",
    "InMemoryLogStore",
    "LogStore",
    "NEW_ENTRIES",
    "RedisLogStore",
]
