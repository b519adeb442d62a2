"""
Redis Key-Value Store

Redis-backed implementation of the KV store with:
- Namespace isolation via key prefixes
- Value and metadata kept together in one hash per key
- Lexically ordered, cursor-paged prefix listing over SCAN
- Async operations throughout
- Hit/miss/error statistics

Unlike a best-effort cache, every Redis failure is raised as KVStoreError
so the data services can run their invalidate-on-error policy.
"""

import asyncio
import bisect
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError

from weatherguard.exceptions import KVStoreError
from weatherguard.kv.base import DEFAULT_LIST_LIMIT, KVKey, KVListResult, KVStore
from weatherguard.kv.serialization import deserialize_value, serialize_value
from weatherguard.models.common import KVMetadata


logger = logging.getLogger(__name__)

VALUE_FIELD = "value"
METADATA_FIELD = "metadata"

_GLOB_SPECIAL = "\\*?[]"


def escape_glob(text: str) -> str:
    """Escape Redis MATCH glob characters so a prefix matches literally."""
    return "".join(f"\\{ch}" if ch in _GLOB_SPECIAL else ch for ch in text)


@dataclass
class StoreStats:
    """Store operation statistics."""
    hits: int = 0
    misses: int = 0
    writes: int = 0
    deletes: int = 0
    errors: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0


class RedisKVStore(KVStore):
    """
    KV store on top of redis.asyncio.

    Usage:
        store = RedisKVStore(redis_url="redis://localhost:6379/0")
        await store.initialize()
        await store.put("project:123", {...}, metadata)
        await store.close()
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        namespace: str = "weatherguard",
        max_connections: int = 50,
        socket_timeout: float = 5.0,
        page_limit: int = DEFAULT_LIST_LIMIT,
        redis: Optional[Redis] = None,
    ):
        self.redis_url = redis_url
        self.namespace = namespace
        self.max_connections = max_connections
        self.socket_timeout = socket_timeout
        self.page_limit = page_limit
        self._pool: Optional[ConnectionPool] = None
        self._redis: Optional[Redis] = redis
        self._initialized = redis is not None
        self._lock = asyncio.Lock()
        self._stats = StoreStats()

    async def initialize(self):
        """Initialize Redis connection pool."""
        if self._initialized:
            return

        async with self._lock:
            if self._initialized:
                return

            try:
                self._pool = ConnectionPool.from_url(
                    self.redis_url,
                    max_connections=self.max_connections,
                    socket_timeout=self.socket_timeout,
                    socket_connect_timeout=self.socket_timeout,
                    decode_responses=True,
                )
                self._redis = Redis(connection_pool=self._pool)

                # Test connection
                await self._redis.ping()
                self._initialized = True
                logger.info(f"Redis KV store initialized: {self.redis_url}")

            except RedisError as e:
                logger.error(f"Failed to initialize Redis: {e}")
                raise KVStoreError(f"Redis unavailable: {e}") from e

    async def close(self):
        """Close Redis connection pool."""
        if self._redis:
            await self._redis.aclose()
        if self._pool:
            await self._pool.disconnect()
        self._initialized = False
        logger.info("Redis KV store closed")

    def _full_key(self, key: str) -> str:
        return f"{self.namespace}:{key}" if self.namespace else key

    def _strip_namespace(self, full_key: str) -> str:
        if self.namespace and full_key.startswith(f"{self.namespace}:"):
            return full_key[len(self.namespace) + 1:]
        return full_key

    async def _client(self) -> Redis:
        if not self._initialized:
            await self.initialize()
        return self._redis

    # =========================================================================
    # Core Operations
    # =========================================================================

    async def get(self, key: str) -> Optional[Any]:
        redis = await self._client()
        start_time = time.time()

        try:
            data = await redis.hget(self._full_key(key), VALUE_FIELD)
        except RedisError as e:
            self._stats.errors += 1
            logger.error(f"KV get error for {key}: {e}")
            raise KVStoreError(f"get failed for {key}: {e}", key=key) from e

        logger.debug(f"KV get {key} in {(time.time() - start_time) * 1000:.1f}ms")

        if data is None:
            self._stats.misses += 1
            return None

        self._stats.hits += 1
        return deserialize_value(data)

    async def put(
        self,
        key: str,
        value: Any,
        metadata: Optional[KVMetadata] = None,
    ) -> None:
        redis = await self._client()
        mapping = {VALUE_FIELD: serialize_value(value)}
        if metadata is not None:
            mapping[METADATA_FIELD] = serialize_value(metadata.to_wire())

        try:
            full_key = self._full_key(key)
            async with redis.pipeline(transaction=True) as pipe:
                # Replace the whole hash in one MULTI/EXEC; readers never see it missing
                pipe.delete(full_key)
                pipe.hset(full_key, mapping=mapping)
                await pipe.execute()
        except RedisError as e:
            self._stats.errors += 1
            logger.error(f"KV put error for {key}: {e}")
            raise KVStoreError(f"put failed for {key}: {e}", key=key) from e

        self._stats.writes += 1

    async def delete(self, key: str) -> None:
        redis = await self._client()

        try:
            await redis.delete(self._full_key(key))
        except RedisError as e:
            self._stats.errors += 1
            logger.error(f"KV delete error for {key}: {e}")
            raise KVStoreError(f"delete failed for {key}: {e}", key=key) from e

        self._stats.deletes += 1

    async def list(
        self,
        prefix: Optional[str] = None,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> KVListResult:
        redis = await self._client()
        limit = limit or self.page_limit
        pattern = escape_glob(self._full_key(prefix or "")) + "*"

        try:
            names = sorted([
                self._strip_namespace(full_key)
                async for full_key in redis.scan_iter(match=pattern, count=500)
            ])
            if cursor:
                names = names[bisect.bisect_right(names, cursor):]

            page = names[:limit]
            metadata = await self._load_metadata(redis, page)
        except RedisError as e:
            self._stats.errors += 1
            logger.error(f"KV list error for prefix {prefix!r}: {e}")
            raise KVStoreError(f"list failed for prefix {prefix!r}: {e}") from e

        complete = len(names) <= limit
        return KVListResult(
            keys=[KVKey(name=name, metadata=metadata.get(name)) for name in page],
            list_complete=complete,
            cursor=None if complete else page[-1],
        )

    async def _load_metadata(
        self,
        redis: Redis,
        names: List[str],
    ) -> Dict[str, KVMetadata]:
        """Fetch metadata for a page of keys in one round trip."""
        if not names:
            return {}

        async with redis.pipeline(transaction=False) as pipe:
            for name in names:
                pipe.hget(self._full_key(name), METADATA_FIELD)
            raw = await pipe.execute()

        result = {}
        for name, data in zip(names, raw):
            decoded = deserialize_value(data)
            if decoded:
                result[name] = KVMetadata.model_validate(decoded)
        return result

    # =========================================================================
    # Statistics and Health
    # =========================================================================

    def get_stats(self) -> Dict:
        """Get store statistics."""
        return {
            "backend": "redis",
            "initialized": self._initialized,
            "hits": self._stats.hits,
            "misses": self._stats.misses,
            "writes": self._stats.writes,
            "deletes": self._stats.deletes,
            "errors": self._stats.errors,
            "hit_rate_percent": round(self._stats.hit_rate * 100, 2),
        }

    async def health_check(self) -> Dict:
        """Perform health check."""
        try:
            redis = await self._client()
            start = time.time()
            await redis.ping()
            latency_ms = (time.time() - start) * 1000

            return {
                "healthy": True,
                "status": "connected",
                "latency_ms": round(latency_ms, 2),
                "stats": self.get_stats(),
            }

        except (RedisError, KVStoreError) as e:
            return {
                "healthy": False,
                "status": "error",
                "error": str(e),
                "stats": self.get_stats(),
            }
