"""
Tests for the key-value stores.

Tests cover:
- In-memory store get/put/delete and copy semantics
- Lexical prefix listing with cursors
- Redis store against a mocked redis.asyncio client
- Value serialization
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from redis.exceptions import RedisError

from weatherguard.exceptions import KVStoreError
from weatherguard.kv import InMemoryKVStore, RedisKVStore
from weatherguard.kv.redis_store import escape_glob
from weatherguard.kv.serialization import serialize_value, deserialize_value
from weatherguard.models import KVMetadata


# ============================================================================
# In-Memory Store
# ============================================================================

class TestInMemoryKVStore:
    """Tests for InMemoryKVStore."""

    @pytest.mark.asyncio
    async def test_get_missing_key_returns_none(self, memory_store):
        """Absent keys read as None."""
        assert await memory_store.get("project:nope") is None

    @pytest.mark.asyncio
    async def test_put_then_get(self, memory_store):
        """Stored values are returned."""
        await memory_store.put("project:1", {"id": "1", "name": "Bridge"})
        assert await memory_store.get("project:1") == {"id": "1", "name": "Bridge"}

    @pytest.mark.asyncio
    async def test_values_are_copied(self, memory_store):
        """Mutating a value after put or get never changes the stored copy."""
        value = {"id": "1", "tags": ["a"]}
        await memory_store.put("project:1", value)
        value["tags"].append("b")

        read = await memory_store.get("project:1")
        read["tags"].append("c")

        assert await memory_store.get("project:1") == {"id": "1", "tags": ["a"]}

    @pytest.mark.asyncio
    async def test_delete_absent_key_is_not_an_error(self, memory_store):
        """Deleting a missing key is a no-op."""
        await memory_store.delete("project:missing")
        assert len(memory_store) == 0

    @pytest.mark.asyncio
    async def test_metadata_is_stored(self, memory_store):
        """Metadata travels with the key and shows up in listings."""
        metadata = KVMetadata(id="1", tags=["project", "org-1"])
        await memory_store.put("project:1", {"id": "1"}, metadata)

        listing = await memory_store.list(prefix="project:")
        assert listing.keys[0].metadata.tags == ["project", "org-1"]
        assert memory_store.metadata_for("project:1").id == "1"

    @pytest.mark.asyncio
    async def test_list_is_lexical_and_prefix_scoped(self, memory_store):
        """Listing returns only matching keys, sorted."""
        for key in ["task:b", "project:2", "project:1", "project:org:x:1"]:
            await memory_store.put(key, key)

        listing = await memory_store.list(prefix="project:")

        assert listing.names == ["project:1", "project:2", "project:org:x:1"]
        assert listing.list_complete is True
        assert listing.cursor is None

    @pytest.mark.asyncio
    async def test_list_pages_with_cursor(self):
        """Listings page by cursor until complete."""
        store = InMemoryKVStore(page_limit=2)
        for i in range(5):
            await store.put(f"task:project:p1:{i}", str(i))

        first = await store.list(prefix="task:project:p1:")
        assert first.names == ["task:project:p1:0", "task:project:p1:1"]
        assert first.list_complete is False

        second = await store.list(prefix="task:project:p1:", cursor=first.cursor)
        assert second.names == ["task:project:p1:2", "task:project:p1:3"]

    @pytest.mark.asyncio
    async def test_list_all_follows_cursors(self):
        """list_all collects every page."""
        store = InMemoryKVStore(page_limit=3)
        for i in range(10):
            await store.put(f"project:org:o1:{i:02d}", str(i))
        await store.put("project:org:o2:99", "99")

        keys = await store.list_all("project:org:o1:")

        assert len(keys) == 10
        assert keys[-1].name == "project:org:o1:09"


# ============================================================================
# Redis Store
# ============================================================================

def _mock_redis(scan_keys=None, pipeline_results=None):
    """Build a MagicMock shaped like redis.asyncio.Redis."""
    redis = MagicMock()
    redis.hget = AsyncMock(return_value=None)
    redis.delete = AsyncMock(return_value=1)
    redis.ping = AsyncMock(return_value=True)
    redis.aclose = AsyncMock()

    async def scan_iter(match=None, count=None):
        for key in scan_keys or []:
            yield key

    redis.scan_iter = MagicMock(side_effect=scan_iter)

    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=pipeline_results or [])
    redis.pipeline.return_value.__aenter__.return_value = pipe
    redis.pipeline.return_value.__aexit__.return_value = False
    return redis, pipe


@pytest.mark.redis
class TestRedisKVStore:
    """Tests for RedisKVStore with a mocked client."""

    @pytest.mark.asyncio
    async def test_get_reads_value_field(self):
        """get reads the value field of the namespaced hash."""
        redis, _ = _mock_redis()
        redis.hget.return_value = '{"id": "1", "name": "Bridge"}'
        store = RedisKVStore(namespace="wg", redis=redis)

        value = await store.get("project:1")

        assert value == {"id": "1", "name": "Bridge"}
        redis.hget.assert_awaited_once_with("wg:project:1", "value")
        assert store.get_stats()["hits"] == 1

    @pytest.mark.asyncio
    async def test_get_miss(self):
        """A missing hash reads as None and counts as a miss."""
        redis, _ = _mock_redis()
        store = RedisKVStore(namespace="wg", redis=redis)

        assert await store.get("project:404") is None
        assert store.get_stats()["misses"] == 1

    @pytest.mark.asyncio
    async def test_put_replaces_hash(self):
        """put deletes the old hash and writes value and metadata in one transaction."""
        redis, pipe = _mock_redis()
        store = RedisKVStore(namespace="wg", redis=redis)

        await store.put("project:1", {"id": "1"}, KVMetadata(id="1", tags=["project"]))

        redis.pipeline.assert_called_once_with(transaction=True)
        pipe.delete.assert_called_once_with("wg:project:1")
        mapping = pipe.hset.call_args.kwargs["mapping"]
        assert deserialize_value(mapping["value"]) == {"id": "1"}
        assert deserialize_value(mapping["metadata"])["tags"] == ["project"]
        pipe.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_errors_are_wrapped(self):
        """Redis failures surface as KVStoreError."""
        redis, _ = _mock_redis()
        redis.hget.side_effect = RedisError("connection reset")
        store = RedisKVStore(redis=redis)

        with pytest.raises(KVStoreError):
            await store.get("project:1")
        assert store.get_stats()["errors"] == 1

    @pytest.mark.asyncio
    async def test_delete(self):
        """delete removes the namespaced key."""
        redis, _ = _mock_redis()
        store = RedisKVStore(namespace="wg", redis=redis)

        await store.delete("task:1")

        redis.delete.assert_awaited_once_with("wg:task:1")

    @pytest.mark.asyncio
    async def test_list_sorts_strips_namespace_and_pages(self):
        """Scanned keys are sorted, de-namespaced and paged by cursor."""
        redis, pipe = _mock_redis(
            scan_keys=["wg:task:project:p1:c", "wg:task:project:p1:a", "wg:task:project:p1:b"],
            pipeline_results=['{"id": "a", "tags": []}', None],
        )
        store = RedisKVStore(namespace="wg", page_limit=2, redis=redis)

        listing = await store.list(prefix="task:project:p1:")

        assert listing.names == ["task:project:p1:a", "task:project:p1:b"]
        assert listing.list_complete is False
        assert listing.cursor == "task:project:p1:b"
        assert listing.keys[0].metadata.id == "a"
        assert listing.keys[1].metadata is None
        redis.scan_iter.assert_called_once_with(match="wg:task:project:p1:*", count=500)

    @pytest.mark.asyncio
    async def test_health_check(self):
        """Health check pings the server."""
        redis, _ = _mock_redis()
        store = RedisKVStore(redis=redis)

        health = await store.health_check()

        assert health["healthy"] is True
        redis.ping.assert_awaited()

    @pytest.mark.asyncio
    async def test_health_check_reports_failure(self):
        """A failed ping reports unhealthy instead of raising."""
        redis, _ = _mock_redis()
        redis.ping.side_effect = RedisError("down")
        store = RedisKVStore(redis=redis)

        health = await store.health_check()

        assert health["healthy"] is False
        assert "down" in health["error"]

    def test_escape_glob(self):
        """Glob characters in ids match literally."""
        assert escape_glob("task:[x]*?") == "task:\\[x\\]\\*\\?"


# ============================================================================
# Serialization
# ============================================================================

class TestSerialization:
    """Tests for value serialization."""

    def test_models_serialize_with_aliases(self):
        """Pydantic models nested in values serialize in camelCase."""
        data = deserialize_value(serialize_value({"meta": KVMetadata(id="1", created_by="u1")}))
        assert data["meta"]["createdBy"] == "u1"

    def test_empty_input_deserializes_to_none(self):
        """Empty strings and None decode to None."""
        assert deserialize_value(None) is None
        assert deserialize_value("") is None
