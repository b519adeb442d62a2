"""Project data service."""

from typing import Dict, List, Optional

from weatherguard.models.common import PagedResult, PaginationQuery
from weatherguard.models.projects import Project
from weatherguard.services.base import CacheAsideService


class ProjectService(CacheAsideService[Project]):
    """
    Projects, indexed by owning organization.

    Keys:
        project:<id>
        project:org:<organizationId>:<id>
    """

    resource = "project"
    model = Project
    search_fields = ("name", "description", "location")

    def relation_values(self, record: Project) -> Dict[str, Optional[str]]:
        return {"org": record.organization_id}

    def tags(self, record: Project) -> List[Optional[str]]:
        return ["project", record.status, record.organization_id]

    async def get_by_organization(
        self,
        organization_id: str,
        pagination: Optional[PaginationQuery] = None,
    ) -> PagedResult[Project]:
        return await self.get_by_relation("org", organization_id, pagination)

    async def search_projects(
        self,
        query: str,
        organization_id: Optional[str] = None,
        pagination: Optional[PaginationQuery] = None,
    ) -> PagedResult[Project]:
        """Search name, description and location, optionally within one organization."""
        return await self.search(
            query,
            relation="org" if organization_id is not None else None,
            relation_id=organization_id,
            pagination=pagination,
        )
