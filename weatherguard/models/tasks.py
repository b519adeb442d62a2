"""Task record."""

from datetime import datetime
from typing import List, Optional

from weatherguard.models.common import ResourceRecord


class Task(ResourceRecord):
    """
    A scheduled task inside a project schedule.

    Tasks form a hierarchy through parent_task_id; summary tasks group
    their children under a WBS code.
    """

    project_id: str
    schedule_id: str
    external_id: Optional[str] = None
    name: str
    description: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    duration: Optional[float] = None
    predecessor_ids: Optional[str] = None
    weather_sensitive: bool = False
    weather_categories: Optional[List[str]] = None

    # Hierarchy
    parent_task_id: Optional[str] = None
    wbs_code: Optional[str] = None
    task_level: int = 0
    sort_order: Optional[int] = None
    task_type: str = "Task"
    outline_number: Optional[str] = None
    is_summary_task: bool = False
    is_milestone: bool = False

    # Progress
    percent_complete: float = 0
    actual_start_date: Optional[datetime] = None
    actual_end_date: Optional[datetime] = None
    baseline_start_date: Optional[datetime] = None
    baseline_end_date: Optional[datetime] = None
    baseline_duration: Optional[float] = None
    critical_path: bool = False
    total_float: float = 0
    free_float: float = 0

    # Cost tracking
    planned_cost: Optional[float] = None
    actual_cost: Optional[float] = None
    remaining_cost: Optional[float] = None

    # BIM integration
    bim_element_ids: Optional[List[str]] = None
    location_element_id: Optional[str] = None

    # Computed by the backend
    duration_in_days: Optional[int] = None
    is_overdue: bool = False
    is_in_progress: bool = False
