"""Project record."""

from datetime import datetime
from typing import Optional

from weatherguard.models.common import ResourceRecord


class Project(ResourceRecord):
    """A construction project, owned by an organization."""

    name: str
    description: Optional[str] = None
    location: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    status: str = "Planning"
    organization_id: str
    organization_name: Optional[str] = None
    created_by: Optional[str] = None
    creator_name: Optional[str] = None

    # BIM fields
    bim_enabled: bool = False
    coordinate_system_id: Optional[str] = None
    north_direction: Optional[float] = None
    building_height: Optional[float] = None
    gross_floor_area: Optional[float] = None
    number_of_storeys: Optional[int] = None

    # Computed by the backend
    duration_in_days: Optional[int] = None
    schedule_count: Optional[int] = None
    task_count: Optional[int] = None
    analysis_count: Optional[int] = None
