"""
Data Services

Cache-aside services for projects, tasks and weather risk analyses,
plus the forecast sub-cache.
"""

from weatherguard.services.base import (
    CacheAsideService,
    ServiceMode,
    FallbackRule,
    ServiceStats,
)
from weatherguard.services.projects import ProjectService
from weatherguard.services.tasks import TaskService
from weatherguard.services.weather import WeatherAnalysisService
from weatherguard.services.forecast import ForecastCache, location_key

__all__ = [
    # Engine
    "CacheAsideService",
    "ServiceMode",
    "FallbackRule",
    "ServiceStats",
    # Resources
    "ProjectService",
    "TaskService",
    "WeatherAnalysisService",
    # Forecasts
    "ForecastCache",
    "location_key",
]
