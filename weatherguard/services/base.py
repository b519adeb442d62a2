"""
Cache-Aside Resource Service

Generic engine behind the project, task and weather-analysis services.
The KV store holds one primary entry per record plus pointer-only
secondary indexes, one family per relationship:

    <resource>:<id>                              -> record
    <resource>:<relation>:<relation_id>:<id>     -> id

Read path: primary key first, authoritative backend on a miss.
Write path: backend first (delegated mode), then primary + indexes.
Error path: invalidate whatever the failed operation touched.

Principle: the store has no cross-key transactions, so every multi-key
write is followed by cleanup of all touched keys when any part fails.
Cleanup failures are logged and never replace the original error.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import (
    Any, Awaitable, Callable, Dict, Generic, Iterable, List, Optional, Tuple, Type, TypeVar,
)

from pydantic import ValidationError

from weatherguard.backend.resources import ResourceBackend
from weatherguard.exceptions import (
    BackendError,
    ResourceNotFoundError,
    ServiceConfigurationError,
)
from weatherguard.kv.base import KVStore
from weatherguard.models.common import (
    KVMetadata,
    PagedResult,
    PaginationQuery,
    ResourceRecord,
    WireModel,
    utc_now,
)


logger = logging.getLogger(__name__)

R = TypeVar("R", bound=ResourceRecord)

KEY_SEPARATOR = ":"

# Backend page size used while warming an empty index
WARMUP_PAGE_SIZE = 100


class ServiceMode(Enum):
    """Where the authoritative copy of a resource lives."""

    # Writes go to the backend first; the KV store is a cache
    DELEGATED = "delegated"

    # No backend; the KV store is the system of record
    OFFLINE = "offline"


class FallbackRule(Enum):
    """
    When a read consults the authoritative backend.

    The two rules are intentionally different and kept as observed:
    single-record reads fall back on every local miss, while listings
    only fall back when the whole local index is empty.
    """

    # get_by_id: every primary-key miss
    PRIMARY_MISS = "primary_miss"

    # get_by_relation / search: only when the scanned scope holds no entry at all
    EMPTY_INDEX = "empty_index"


@dataclass
class ServiceStats:
    """Per-service operation counters."""
    hits: int = 0
    misses: int = 0
    backend_fallbacks: int = 0
    index_warmups: int = 0
    invalidations: int = 0
    pruned_index_entries: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0


async def gather_settled(aws: Iterable[Awaitable[Any]]) -> List[Any]:
    """
    Await all awaitables concurrently and raise the first failure.

    Unlike a plain gather, every call has settled before the error is
    raised, so cleanup never races a write that is still in flight.
    """
    results = await asyncio.gather(*aws, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return results


def _as_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _sort_key(value: Any) -> Any:
    if isinstance(value, str):
        return value.lower()
    if isinstance(value, datetime):
        return _as_aware(value)
    return value


class CacheAsideService(ABC, Generic[R]):
    """
    Cache-aside data service for one resource kind.

    Subclasses declare the key prefix, model, searchable fields and the
    one function that maps a record to its relationship values. Every
    index key is derived from that function, for create, update, delete
    and cleanup alike.
    """

    resource: str = ""
    model: Type[R]
    search_fields: Tuple[str, ...] = ()

    def __init__(
        self,
        store: KVStore,
        backend: Optional[ResourceBackend[R]] = None,
        *,
        mode: ServiceMode,
        clock: Optional[Callable[[], datetime]] = None,
        default_page_size: int = 10,
        max_page_size: int = 100,
    ):
        if mode is ServiceMode.DELEGATED and backend is None:
            raise ServiceConfigurationError(
                f"{self.resource} service in delegated mode needs a backend"
            )
        if mode is ServiceMode.OFFLINE and backend is not None:
            raise ServiceConfigurationError(
                f"{self.resource} service in offline mode must not be given a backend"
            )

        self.store = store
        self.backend = backend
        self.mode = mode
        self.clock = clock or utc_now
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size
        self._stats = ServiceStats()

    @property
    def delegated(self) -> bool:
        return self.mode is ServiceMode.DELEGATED

    # =========================================================================
    # Key Schema
    # =========================================================================

    @abstractmethod
    def relation_values(self, record: R) -> Dict[str, Optional[str]]:
        """Relation name -> current relation id for every index family."""
        pass

    @abstractmethod
    def tags(self, record: R) -> List[Optional[str]]:
        """Metadata tags: kind, status/type and every owning relation id."""
        pass

    def primary_key(self, resource_id: str) -> str:
        if not resource_id or KEY_SEPARATOR in resource_id:
            raise ValueError(f"Invalid {self.resource} id: {resource_id!r}")
        return f"{self.resource}{KEY_SEPARATOR}{resource_id}"

    def relation_prefix(self, relation: str, relation_id: str) -> str:
        relation_id = str(relation_id)
        # A separator in the id would make one relation's prefix match another's keys
        if not relation_id or KEY_SEPARATOR in relation_id:
            raise ValueError(f"Invalid {self.resource} {relation} id: {relation_id!r}")
        return KEY_SEPARATOR.join([self.resource, relation, relation_id]) + KEY_SEPARATOR

    def relation_key(self, relation: str, relation_id: str, resource_id: str) -> str:
        return self.relation_prefix(relation, relation_id) + resource_id

    def index_keys(self, record: R) -> Dict[str, str]:
        """Relation name -> index key for every relation the record takes part in."""
        keys = {}
        for relation, relation_id in self.relation_values(record).items():
            if relation_id:
                keys[relation] = self.relation_key(relation, relation_id, record.id)
        return keys

    def all_keys(self, record: R) -> List[str]:
        """Primary key followed by every index key derived from the record."""
        return [self.primary_key(record.id), *self.index_keys(record).values()]

    def is_primary_key(self, name: str) -> bool:
        prefix = f"{self.resource}{KEY_SEPARATOR}"
        return name.startswith(prefix) and KEY_SEPARATOR not in name[len(prefix):]

    def build_metadata(self, record: R) -> KVMetadata:
        return KVMetadata(
            id=record.id,
            created_at=record.created_at.isoformat() if record.created_at else None,
            updated_at=record.updated_at.isoformat() if record.updated_at else None,
            created_by=getattr(record, "created_by", None),
            tags=[str(tag) for tag in self.tags(record) if tag],
        )

    # =========================================================================
    # Read Path
    # =========================================================================

    async def get_by_id(self, resource_id: str) -> Optional[R]:
        """
        Get a record, cache first.

        Falls back to the backend on a miss (FallbackRule.PRIMARY_MISS) and
        writes the result through to the primary key. Returns None only if
        neither the cache nor the backend has the record.
        """
        key = self.primary_key(resource_id)

        try:
            data = await self.store.get(key)
            record = self.model.model_validate(data) if data is not None else None
        except Exception as e:
            # A failed read may mean a torn entry; drop it before surfacing the error
            logger.error(f"Cache read failed for {key}: {e}")
            await self.invalidate_keys([key])
            raise

        if record is not None:
            self._stats.hits += 1
            logger.debug(f"Cache HIT for {key}")
            return record

        self._stats.misses += 1
        if not self.delegated:
            return None

        record = await self._fetch_from_backend(resource_id)
        if record is None:
            return None

        try:
            await self.store.put(key, record.to_wire(), self.build_metadata(record))
        except Exception as e:
            logger.error(f"Write-through failed for {key}: {e}")
            await self.invalidate_keys([key])
            raise

        return record

    async def _fetch_from_backend(self, resource_id: str) -> Optional[R]:
        self._stats.backend_fallbacks += 1
        logger.debug(
            f"{FallbackRule.PRIMARY_MISS.value}: fetching {self.resource} {resource_id} from backend"
        )
        try:
            return await self.backend.get(resource_id)
        except (BackendError, ValidationError) as e:
            logger.warning(f"API fallback failed for {self.resource} {resource_id}: {e}")
            return None

    # =========================================================================
    # Write Path
    # =========================================================================

    async def create(self, record: R) -> R:
        """
        Create a record.

        In delegated mode the backend write happens first and the cache is
        only written once it succeeds. On backend failure every key the
        record could occupy is cleared, then the error is re-raised.
        """
        keys = self.all_keys(record)

        if self.delegated:
            try:
                await self.backend.create(record)
            except Exception as e:
                logger.warning(f"API create failed for {self.resource} {record.id}: {e}")
                await self.invalidate(record.id)
                await self.invalidate_keys(keys)
                raise

        await self.write_through(record)
        logger.debug(f"Cached new {self.resource} {record.id}")
        return record

    async def write_through(self, record: R) -> None:
        """
        Write the primary entry and every index entry concurrently.

        If the cache already holds a version of the record, index entries
        it no longer qualifies for are deleted in the same pass.
        """
        primary = self.primary_key(record.id)
        index_keys = list(self.index_keys(record).values())
        metadata = self.build_metadata(record)

        existing = await self._read_cached(record.id)
        stale = [
            key for key in (self.index_keys(existing).values() if existing else [])
            if key not in index_keys
        ]

        try:
            await gather_settled([
                self.store.put(primary, record.to_wire(), metadata),
                *(self.store.put(key, record.id, metadata) for key in index_keys),
                *(self.store.delete(key) for key in stale),
            ])
        except Exception as e:
            logger.error(f"Cache write failed for {primary}: {e}")
            await self.invalidate_keys([primary, *index_keys, *stale])
            raise

        if stale:
            logger.debug(f"Dropped {len(stale)} stale index entries for {primary}")

    async def update(self, resource_id: str, changes: Any) -> R:
        """
        Merge changes over the current record.

        Only index families whose relation value changed are rewritten:
        the old index key is deleted and the new one written. On backend
        failure the whole cache entry is invalidated rather than left stale.

        Raises:
            ResourceNotFoundError: The record exists neither in cache nor backend
        """
        current = await self.get_by_id(resource_id)
        if current is None:
            raise ResourceNotFoundError(self.resource, resource_id)

        fields = self._normalize_changes(resource_id, changes)
        updated = self._merge(current, fields)

        primary = self.primary_key(resource_id)
        old_keys = self.index_keys(current)
        new_keys = self.index_keys(updated)

        if self.delegated:
            try:
                await self.backend.update(resource_id, self._wire_changes(updated, fields))
            except Exception as e:
                logger.warning(f"API update failed for {self.resource} {resource_id}: {e}")
                await self.invalidate_keys([primary, *old_keys.values()])
                raise

        metadata = self.build_metadata(updated)
        stale = [key for relation, key in old_keys.items() if new_keys.get(relation) != key]
        added = [key for relation, key in new_keys.items() if old_keys.get(relation) != key]

        try:
            await gather_settled([
                self.store.put(primary, updated.to_wire(), metadata),
                *(self.store.delete(key) for key in stale),
                *(self.store.put(key, resource_id, metadata) for key in added),
            ])
        except Exception as e:
            logger.error(f"Cache update failed for {primary}: {e}")
            await self.invalidate_keys([primary, *old_keys.values(), *new_keys.values()])
            raise

        if stale or added:
            logger.debug(
                f"Re-indexed {self.resource} {resource_id}: -{len(stale)} +{len(added)}"
            )
        return updated

    async def delete(self, resource_id: str) -> bool:
        """
        Delete a record and every index entry derived from it.

        Returns False when there is nothing to delete. If the backend delete
        fails the cache is left untouched, so the record stays readable and
        the caller can retry.
        """
        record = await self.get_by_id(resource_id)
        if record is None:
            return False

        if self.delegated:
            try:
                await self.backend.delete(resource_id)
            except Exception as e:
                logger.warning(
                    f"API delete failed for {self.resource} {resource_id}, keeping cached copy: {e}"
                )
                raise

        keys = self.all_keys(record)
        try:
            await gather_settled([self.store.delete(key) for key in keys])
        except Exception as e:
            logger.error(f"Cache delete failed for {self.resource} {resource_id}: {e}")
            await self.invalidate_keys(keys)
            raise

        return True

    def _normalize_changes(self, resource_id: str, changes: Any) -> Dict[str, Any]:
        """Map a partial update (field names or camelCase aliases) to field names."""
        if isinstance(changes, WireModel):
            changes = changes.model_dump(exclude_unset=True)

        by_alias = {
            field.alias: name
            for name, field in self.model.model_fields.items()
            if field.alias
        }

        fields = {}
        for key, value in dict(changes).items():
            name = key if key in self.model.model_fields else by_alias.get(key, key)
            if name == "id":
                if value != resource_id:
                    raise ValueError(f"{self.resource} id is immutable")
                continue
            if name == "updated_at":
                continue
            fields[name] = value
        return fields

    def _merge(self, current: R, fields: Dict[str, Any]) -> R:
        data = current.model_dump()
        data.update(fields)
        data["updated_at"] = self._next_timestamp(current.updated_at)
        return self.model.model_validate(data)

    def _wire_changes(self, updated: R, fields: Dict[str, Any]) -> Dict[str, Any]:
        """The changed fields only, in wire form, for the backend PUT."""
        wire = updated.to_wire()
        changes = {}
        for name in fields:
            field = self.model.model_fields.get(name)
            alias = field.alias if field is not None and field.alias else name
            changes[alias] = wire.get(alias)
        return changes

    def _next_timestamp(self, previous: Optional[datetime]) -> datetime:
        """A timestamp strictly after previous, even if the clock has not moved."""
        now = _as_aware(self.clock())
        if previous is not None:
            previous = _as_aware(previous)
            if now <= previous:
                now = previous + timedelta(microseconds=1)
        return now

    # =========================================================================
    # Listing and Search
    # =========================================================================

    def normalize_pagination(self, pagination: Optional[PaginationQuery]) -> PaginationQuery:
        """Apply the default page size and cap oversized pages."""
        if pagination is None:
            return PaginationQuery(page_size=self.default_page_size)
        if pagination.page_size > self.max_page_size:
            return pagination.model_copy(update={"page_size": self.max_page_size})
        return pagination

    async def get_by_relation(
        self,
        relation: str,
        relation_id: str,
        pagination: Optional[PaginationQuery] = None,
    ) -> PagedResult[R]:
        """
        Page through the records of one relation index.

        The whole index is listed and resolved, then optionally sorted,
        then sliced; the store itself is never asked for a page.
        """
        pagination = self.normalize_pagination(pagination)
        records = await self.load_relation(relation, relation_id)
        return self._page(records, pagination)

    async def search(
        self,
        query: str,
        relation: Optional[str] = None,
        relation_id: Optional[str] = None,
        pagination: Optional[PaginationQuery] = None,
    ) -> PagedResult[R]:
        """
        Case-insensitive substring search over the resource's text fields.

        Scans one relation index when relation_id is given, otherwise every
        primary record of this resource kind. No index accelerates this.
        When the scanned scope is empty in delegated mode it is warmed once
        from the backend (FallbackRule.EMPTY_INDEX).
        """
        pagination = self.normalize_pagination(pagination)

        if relation_id is not None:
            if relation is None:
                raise ValueError("relation is required when relation_id is given")
            records = await self.load_relation(relation, relation_id)
        else:
            records = await self.load_all()
            if not records and self.delegated:
                records = await self._warm_search(query or "")

        needle = (query or "").lower()
        matches = [record for record in records if self._matches(record, needle)]
        return self._page(matches, pagination)

    def _matches(self, record: R, needle: str) -> bool:
        for field in self.search_fields:
            value = getattr(record, field, None)
            if value and needle in str(value).lower():
                return True
        return not needle

    async def load_relation(self, relation: str, relation_id: str) -> List[R]:
        """
        Resolve every record in a relation index.

        An empty index in delegated mode is warmed once from the backend
        (FallbackRule.EMPTY_INDEX). Index entries whose record no longer
        exists anywhere are pruned. On store failure only this relation's
        index is invalidated.
        """
        prefix = self.relation_prefix(relation, relation_id)

        try:
            keys = await self.store.list_all(prefix)
            ids = [
                key.name[len(prefix):]
                for key in keys
                if KEY_SEPARATOR not in key.name[len(prefix):]
            ]

            if not ids:
                if self.delegated:
                    return await self._warm_relation(relation, relation_id)
                return []

            return await self._resolve(ids, prefix)

        except Exception as e:
            logger.error(f"Listing {prefix} failed: {e}")
            await self.invalidate_prefix(prefix)
            raise

    async def load_all(self) -> List[R]:
        """Resolve every primary record of this resource kind."""
        prefix = f"{self.resource}{KEY_SEPARATOR}"
        keys = await self.store.list_all(prefix)
        ids = [key.name[len(prefix):] for key in keys if self.is_primary_key(key.name)]
        return await self._resolve(ids)

    async def _resolve(self, ids: List[str], index_prefix: Optional[str] = None) -> List[R]:
        records = await gather_settled([self.get_by_id(resource_id) for resource_id in ids])

        resolved = []
        dangling = []
        for resource_id, record in zip(ids, records):
            if record is None:
                dangling.append(resource_id)
            else:
                resolved.append(record)

        if dangling and index_prefix:
            logger.warning(
                f"Pruning {len(dangling)} dangling index entries under {index_prefix}"
            )
            self._stats.pruned_index_entries += len(dangling)
            await self.invalidate_keys([index_prefix + resource_id for resource_id in dangling])

        return resolved

    async def _warm_relation(self, relation: str, relation_id: str) -> List[R]:
        """Backfill an empty relation index from the backend, once."""
        prefix = self.relation_prefix(relation, relation_id)
        if not self.backend.supports_relation(relation):
            logger.debug(f"Backend cannot list {self.resource} by {relation}; {prefix} stays empty")
            return []

        return await self._warm(
            prefix,
            lambda pagination: self.backend.get_by_relation(relation, relation_id, pagination),
        )

    async def _warm_search(self, query: str) -> List[R]:
        """Backfill an empty resource keyspace from the backend's search."""
        return await self._warm(
            f"{self.resource}{KEY_SEPARATOR}",
            lambda pagination: self.backend.search(query, pagination),
        )

    async def _warm(
        self,
        scope: str,
        fetch_page: Callable[[PaginationQuery], Awaitable[Optional[PagedResult[R]]]],
    ) -> List[R]:
        self._stats.backend_fallbacks += 1
        logger.info(f"{FallbackRule.EMPTY_INDEX.value}: warming {scope} from backend")

        try:
            records = await self._fetch_pages(fetch_page)
        except (BackendError, ValidationError) as e:
            logger.warning(f"API fallback failed for {scope}: {e}")
            return []

        if records:
            # Cache-only write: these records already exist in the backend
            await gather_settled([self.write_through(record) for record in records])
            self._stats.index_warmups += 1
            logger.info(f"Warmed {len(records)} {self.resource} records into {scope}")

        return records

    async def _fetch_pages(
        self,
        fetch_page: Callable[[PaginationQuery], Awaitable[Optional[PagedResult[R]]]],
    ) -> List[R]:
        records: List[R] = []
        page_number = 1

        while True:
            page = await fetch_page(
                PaginationQuery(page_number=page_number, page_size=WARMUP_PAGE_SIZE)
            )
            if page is None:
                return []

            records.extend(page.items)
            if not page.items or page_number >= page.total_pages:
                break
            page_number += 1

        return records

    def _page(self, records: List[R], pagination: PaginationQuery) -> PagedResult[R]:
        return PagedResult[self.model].from_window(
            self._sort(records, pagination),
            pagination,
        )

    def _sort(self, records: List[R], pagination: PaginationQuery) -> List[R]:
        if not pagination.order_by:
            return records

        name = pagination.order_by
        if name not in self.model.model_fields:
            aliases = {
                field.alias: field_name
                for field_name, field in self.model.model_fields.items()
            }
            name = aliases.get(name, name)

        present = [record for record in records if getattr(record, name, None) is not None]
        missing = [record for record in records if getattr(record, name, None) is None]
        present.sort(
            key=lambda record: _sort_key(getattr(record, name)),
            reverse=pagination.descending,
        )
        return present + missing

    # =========================================================================
    # Invalidation
    # =========================================================================

    async def invalidate_keys(self, keys: Iterable[str]) -> None:
        """Best-effort delete of keys; failures are logged, never raised."""
        keys = list(dict.fromkeys(keys))
        if not keys:
            return

        results = await asyncio.gather(
            *(self.store.delete(key) for key in keys),
            return_exceptions=True,
        )
        for key, result in zip(keys, results):
            if isinstance(result, Exception):
                logger.warning(f"Failed to clear cache key {key}: {result}")

        self._stats.invalidations += 1

    async def invalidate_prefix(self, prefix: str) -> None:
        """Best-effort delete of every key under one relation prefix."""
        try:
            keys = await self.store.list_all(prefix)
        except Exception as e:
            logger.warning(f"Failed to list {prefix} for invalidation: {e}")
            return

        await self.invalidate_keys(key.name for key in keys)
        logger.info(f"Invalidated {len(keys)} index entries under {prefix}")

    async def _read_cached(self, resource_id: str) -> Optional[R]:
        """Cache-only read that never consults the backend and never raises."""
        key = self.primary_key(resource_id)
        try:
            data = await self.store.get(key)
            return self.model.model_validate(data) if data is not None else None
        except Exception as e:
            logger.warning(f"Could not read cached {key}: {e}")
            return None

    async def invalidate(self, resource_id: str) -> None:
        """Drop a record and its index entries from the cache only."""
        record = await self._read_cached(resource_id)
        await self.invalidate_keys(
            self.all_keys(record) if record else [self.primary_key(resource_id)]
        )

    # =========================================================================
    # Statistics
    # =========================================================================

    def get_stats(self) -> Dict[str, Any]:
        """Get service statistics."""
        return {
            "resource": self.resource,
            "mode": self.mode.value,
            "hits": self._stats.hits,
            "misses": self._stats.misses,
            "hit_rate_percent": round(self._stats.hit_rate * 100, 2),
            "backend_fallbacks": self._stats.backend_fallbacks,
            "index_warmups": self._stats.index_warmups,
            "invalidations": self._stats.invalidations,
            "pruned_index_entries": self._stats.pruned_index_entries,
        }
