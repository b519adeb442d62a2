"""
Resource Models

Pydantic models for the records cached by the edge data layer.
"""

from .common import (
    WireModel,
    ResourceRecord,
    KVMetadata,
    PaginationQuery,
    PagedResult,
    utc_now,
)
from .projects import Project
from .tasks import Task
from .weather import (
    RiskLevel,
    WeatherRiskAnalysis,
    WeatherForecast,
    ForecastEntry,
)

__all__ = [
    # Common
    "WireModel",
    "ResourceRecord",
    "KVMetadata",
    "PaginationQuery",
    "PagedResult",
    "utc_now",
    # Resources
    "Project",
    "Task",
    "RiskLevel",
    "WeatherRiskAnalysis",
    "WeatherForecast",
    "ForecastEntry",
]
