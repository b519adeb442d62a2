"""
Resource Backends

Per-resource view of the authoritative API consumed by the cache-aside
services: get / get_by_relation / search / create / update / delete.
Each call either returns a resource-shaped value or raises.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Generic, Optional, Type, TypeVar

from weatherguard.backend.client import WeatherGuardApiClient
from weatherguard.exceptions import BackendError
from weatherguard.models import (
    PagedResult,
    PaginationQuery,
    Project,
    ResourceRecord,
    Task,
    WeatherRiskAnalysis,
)


logger = logging.getLogger(__name__)

R = TypeVar("R", bound=ResourceRecord)


class ResourceBackend(ABC, Generic[R]):
    """Abstract authoritative source for one resource kind."""

    @abstractmethod
    async def get(self, resource_id: str) -> Optional[R]:
        """Fetch one record; None when the backend does not know it."""
        pass

    @abstractmethod
    async def get_by_relation(
        self,
        relation: str,
        relation_id: str,
        pagination: PaginationQuery,
    ) -> Optional[PagedResult[R]]:
        """
        Fetch one page of records owned by relation_id.

        Returns None when the backend has no listing for that relation.
        """
        pass

    def supports_relation(self, relation: str) -> bool:
        """Whether get_by_relation can list this relation at all."""
        return True

    async def search(
        self,
        query: str,
        pagination: PaginationQuery,
    ) -> Optional[PagedResult[R]]:
        """
        Fetch one page of records matching a free-text query.

        Returns None when the backend offers no search for this resource.
        """
        return None

    @abstractmethod
    async def create(self, record: R) -> Any:
        pass

    @abstractmethod
    async def update(self, resource_id: str, changes: Dict[str, Any]) -> Any:
        """Apply a partial update; changes use camelCase wire names."""
        pass

    @abstractmethod
    async def delete(self, resource_id: str) -> Any:
        pass


class HttpResourceBackend(ResourceBackend[R]):
    """
    Resource backend over the WeatherGuard REST API.

    Args:
        client: Shared API client
        model: Record model used to parse responses
        base_path: Collection path, e.g. "/api/projects"
        relation_paths: relation name -> path template with {id}
        search_path: Collection path accepting ?search=, if the API has one
    """

    def __init__(
        self,
        client: WeatherGuardApiClient,
        model: Type[R],
        base_path: str,
        relation_paths: Optional[Dict[str, str]] = None,
        search_path: Optional[str] = None,
    ):
        self.client = client
        self.model = model
        self.base_path = base_path.rstrip("/")
        self.relation_paths = relation_paths or {}
        self.search_path = search_path

    def supports_relation(self, relation: str) -> bool:
        return relation in self.relation_paths

    async def get(self, resource_id: str) -> Optional[R]:
        try:
            data = await self.client.get(f"{self.base_path}/{resource_id}")
        except BackendError as e:
            if e.status_code == 404:
                return None
            raise

        if not data:
            return None
        return self.model.model_validate(data)

    async def get_by_relation(
        self,
        relation: str,
        relation_id: str,
        pagination: PaginationQuery,
    ) -> Optional[PagedResult[R]]:
        template = self.relation_paths.get(relation)
        if template is None:
            logger.debug(f"No backend listing for {self.base_path} by {relation}")
            return None

        data = await self.client.get(
            template.format(id=relation_id),
            params={
                "pageNumber": pagination.page_number,
                "pageSize": pagination.page_size,
            },
        )
        return self._to_page(data, pagination)

    async def search(
        self,
        query: str,
        pagination: PaginationQuery,
    ) -> Optional[PagedResult[R]]:
        if self.search_path is None:
            logger.debug(f"No backend search for {self.base_path}")
            return None

        data = await self.client.get(
            self.search_path,
            params={
                "search": query,
                "pageNumber": pagination.page_number,
                "pageSize": pagination.page_size,
            },
        )
        return self._to_page(data, pagination)

    def _to_page(self, data: Any, pagination: PaginationQuery) -> PagedResult[R]:
        if data is None:
            return PagedResult[self.model](
                page_number=pagination.page_number,
                page_size=pagination.page_size,
            )

        # Some endpoints return a bare list instead of a paged envelope
        if isinstance(data, list):
            return PagedResult[self.model](
                items=data,
                total_count=len(data),
                page_number=1,
                page_size=max(len(data), 1),
                total_pages=1,
            )

        return PagedResult[self.model].model_validate(data)

    async def create(self, record: R) -> Any:
        return await self.client.post(self.base_path, record.to_wire())

    async def update(self, resource_id: str, changes: Dict[str, Any]) -> Any:
        return await self.client.put(f"{self.base_path}/{resource_id}", changes)

    async def delete(self, resource_id: str) -> Any:
        return await self.client.delete(f"{self.base_path}/{resource_id}")


def project_backend(client: WeatherGuardApiClient) -> HttpResourceBackend[Project]:
    return HttpResourceBackend(
        client,
        Project,
        "/api/projects",
        relation_paths={"org": "/api/projects/organization/{id}"},
        search_path="/api/projects",
    )


def task_backend(client: WeatherGuardApiClient) -> HttpResourceBackend[Task]:
    # The API has no schedule or parent listing; those indexes never warm from it
    return HttpResourceBackend(
        client,
        Task,
        "/api/tasks",
        relation_paths={"project": "/api/tasks/project/{id}"},
    )


def weather_analysis_backend(
    client: WeatherGuardApiClient,
) -> HttpResourceBackend[WeatherRiskAnalysis]:
    return HttpResourceBackend(
        client,
        WeatherRiskAnalysis,
        "/api/weatherriskanalysis",
        relation_paths={"project": "/api/weatherriskanalysis/project/{id}"},
    )
