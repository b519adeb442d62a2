"""Task data service."""

from typing import Dict, List, Optional

from weatherguard.models.common import PagedResult, PaginationQuery
from weatherguard.models.tasks import Task
from weatherguard.services.base import CacheAsideService


class TaskService(CacheAsideService[Task]):
    """
    Tasks, indexed by project, schedule and parent task.

    Keys:
        task:<id>
        task:project:<projectId>:<id>
        task:schedule:<scheduleId>:<id>
        task:parent:<parentTaskId>:<id>    (only for child tasks)

    Re-parenting a task moves it between parent indexes; the update path
    deletes the old parent entry and writes the new one.
    """

    resource = "task"
    model = Task
    search_fields = ("name", "description", "wbs_code")

    def relation_values(self, record: Task) -> Dict[str, Optional[str]]:
        return {
            "project": record.project_id,
            "schedule": record.schedule_id,
            "parent": record.parent_task_id,
        }

    def tags(self, record: Task) -> List[Optional[str]]:
        return [
            "task",
            record.task_type,
            record.project_id,
            record.schedule_id,
            record.parent_task_id,
            "weather_sensitive" if record.weather_sensitive else None,
            "critical_path" if record.critical_path else None,
        ]

    async def get_by_project(
        self,
        project_id: str,
        pagination: Optional[PaginationQuery] = None,
    ) -> PagedResult[Task]:
        return await self.get_by_relation("project", project_id, pagination)

    async def get_by_schedule(
        self,
        schedule_id: str,
        pagination: Optional[PaginationQuery] = None,
    ) -> PagedResult[Task]:
        return await self.get_by_relation("schedule", schedule_id, pagination)

    async def get_children(self, parent_task_id: str) -> List[Task]:
        """All direct children of a task, unpaged."""
        return await self.load_relation("parent", parent_task_id)

    async def get_weather_sensitive(
        self,
        project_id: str,
        pagination: Optional[PaginationQuery] = None,
    ) -> PagedResult[Task]:
        pagination = self.normalize_pagination(pagination)
        tasks = await self.load_relation("project", project_id)
        sensitive = [task for task in tasks if task.weather_sensitive]
        return self._page(sensitive, pagination)

    async def search_tasks(
        self,
        query: str,
        project_id: Optional[str] = None,
        pagination: Optional[PaginationQuery] = None,
    ) -> PagedResult[Task]:
        return await self.search(
            query,
            relation="project" if project_id is not None else None,
            relation_id=project_id,
            pagination=pagination,
        )
