"""
Key-Value Storage

Store abstraction used by the cache-aside data services, with an
in-memory implementation and a Redis implementation.
"""

from weatherguard.kv.base import KVStore, KVKey, KVListResult, DEFAULT_LIST_LIMIT
from weatherguard.kv.memory import InMemoryKVStore
from weatherguard.kv.redis_store import RedisKVStore

__all__ = [
    "KVStore",
    "KVKey",
    "KVListResult",
    "DEFAULT_LIST_LIMIT",
    "InMemoryKVStore",
    "RedisKVStore",
]
