"""
Authoritative Backend

HTTP client for the WeatherGuard API and the per-resource adapters the
data services delegate writes and cache misses to.
"""

from weatherguard.backend.client import WeatherGuardApiClient, RetryConfig, unwrap_response
from weatherguard.backend.resources import (
    ResourceBackend,
    HttpResourceBackend,
    project_backend,
    task_backend,
    weather_analysis_backend,
)

__all__ = [
    "WeatherGuardApiClient",
    "RetryConfig",
    "unwrap_response",
    "ResourceBackend",
    "HttpResourceBackend",
    "project_backend",
    "task_backend",
    "weather_analysis_backend",
]
