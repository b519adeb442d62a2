"""
Pytest Configuration and Shared Fixtures

Provides common fixtures and configuration for all test modules.
"""

import pytest
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from weatherguard.backend.resources import ResourceBackend
from weatherguard.exceptions import BackendError, KVStoreError
from weatherguard.kv.memory import InMemoryKVStore
from weatherguard.models import PagedResult, PaginationQuery, Project, Task, WeatherRiskAnalysis


# ============================================================================
# Test Doubles
# ============================================================================

class FakeClock:
    """Settable clock; does not advance unless told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class FakeBackend(ResourceBackend):
    """
    In-memory stand-in for the WeatherGuard API.

    relations maps a relation name to a function returning a record's
    relation id; relations not listed behave like routes the API lacks.
    search_fields enables free-text search over those record fields.
    """

    def __init__(
        self,
        relations: Optional[Dict[str, Callable[[Any], Optional[str]]]] = None,
        search_fields: Optional[tuple] = None,
    ):
        self.records: Dict[str, Any] = {}
        self.relations = relations or {}
        self.search_fields = search_fields
        self.calls: List[str] = []
        self.updates: List[tuple] = []
        self.fail_on: set = set()

    def _call(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self.fail_on:
            raise BackendError(f"{operation} failed", status_code=500)

    def seed(self, *records) -> None:
        for record in records:
            self.records[record.id] = record

    async def get(self, resource_id: str):
        self._call("get")
        return self.records.get(resource_id)

    async def get_by_relation(self, relation: str, relation_id: str, pagination: PaginationQuery):
        self._call("get_by_relation")
        relation_of = self.relations.get(relation)
        if relation_of is None:
            return None
        matches = [r for r in self.records.values() if relation_of(r) == relation_id]
        return PagedResult.from_window(matches, pagination)

    def supports_relation(self, relation: str) -> bool:
        return relation in self.relations

    async def search(self, query: str, pagination: PaginationQuery):
        self._call("search")
        if self.search_fields is None:
            return None
        needle = query.lower()
        matches = [
            r for r in self.records.values()
            if any(needle in str(getattr(r, field) or "").lower() for field in self.search_fields)
        ]
        return PagedResult.from_window(matches, pagination)

    async def create(self, record):
        self._call("create")
        self.records[record.id] = record
        return record.to_wire()

    async def update(self, resource_id: str, changes: Dict[str, Any]):
        self._call("update")
        self.updates.append((resource_id, changes))
        return None

    async def delete(self, resource_id: str):
        self._call("delete")
        self.records.pop(resource_id, None)
        return None


class FailingStore(InMemoryKVStore):
    """Memory store whose operations can be made to fail per key prefix."""

    def __init__(self):
        super().__init__()
        self.fail_put: set = set()
        self.fail_get: set = set()
        self.fail_delete: set = set()
        self.fail_list = False

    @staticmethod
    def _matches(key: str, prefixes: set) -> bool:
        return any(key.startswith(prefix) for prefix in prefixes)

    async def get(self, key: str):
        if self._matches(key, self.fail_get):
            raise KVStoreError(f"get failed for {key}", key=key)
        return await super().get(key)

    async def put(self, key: str, value, metadata=None):
        if self._matches(key, self.fail_put):
            raise KVStoreError(f"put failed for {key}", key=key)
        await super().put(key, value, metadata)

    async def delete(self, key: str):
        if self._matches(key, self.fail_delete):
            raise KVStoreError(f"delete failed for {key}", key=key)
        await super().delete(key)

    async def list(self, prefix=None, limit=None, cursor=None):
        if self.fail_list:
            raise KVStoreError(f"list failed for {prefix}")
        return await super().list(prefix=prefix, limit=limit, cursor=cursor)


# ============================================================================
# Store and Clock Fixtures
# ============================================================================

@pytest.fixture
def memory_store() -> InMemoryKVStore:
    """Fresh in-memory KV store."""
    return InMemoryKVStore()


@pytest.fixture
def failing_store() -> FailingStore:
    """Memory store with switchable failures."""
    return FailingStore()


@pytest.fixture
def clock() -> FakeClock:
    """Clock fixed at 2024-06-01 12:00 UTC."""
    return FakeClock(datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc))


# ============================================================================
# Backend Fixtures
# ============================================================================

@pytest.fixture
def project_api() -> FakeBackend:
    """Fake project API with an organization listing and search."""
    return FakeBackend(
        {"org": lambda p: p.organization_id},
        search_fields=("name", "description", "location"),
    )


@pytest.fixture
def task_api() -> FakeBackend:
    """Fake task API with a project listing only."""
    return FakeBackend({"project": lambda t: t.project_id})


@pytest.fixture
def analysis_api() -> FakeBackend:
    """Fake analysis API with a project listing only."""
    return FakeBackend({"project": lambda a: a.project_id})


# ============================================================================
# Record Factories
# ============================================================================

@pytest.fixture
def make_project(clock):
    """Factory for Project records."""
    def factory(project_id: str = "p1", **overrides) -> Project:
        data = {
            "id": project_id,
            "name": f"Project {project_id}",
            "organization_id": "org-1",
            "status": "Active",
            "created_at": clock.now,
            "updated_at": clock.now,
        }
        data.update(overrides)
        return Project(**data)
    return factory


@pytest.fixture
def make_task(clock):
    """Factory for Task records."""
    def factory(task_id: str = "t1", **overrides) -> Task:
        data = {
            "id": task_id,
            "name": f"Task {task_id}",
            "project_id": "p1",
            "schedule_id": "s1",
            "created_at": clock.now,
            "updated_at": clock.now,
        }
        data.update(overrides)
        return Task(**data)
    return factory


@pytest.fixture
def make_analysis(clock):
    """Factory for WeatherRiskAnalysis records."""
    def factory(analysis_id: str = "a1", **overrides) -> WeatherRiskAnalysis:
        data = {
            "id": analysis_id,
            "project_id": "p1",
            "risk_level": "low",
            "risk_score": 10,
            "weather_condition": "Clear",
            "impact_description": "No impact expected",
            "created_at": clock.now,
            "updated_at": clock.now,
        }
        data.update(overrides)
        return WeatherRiskAnalysis(**data)
    return factory


# ============================================================================
# Pytest Configuration
# ============================================================================

def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "redis: tests that exercise the Redis store against a mocked client"
    )
