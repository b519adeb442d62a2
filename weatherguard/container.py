"""
Service Wiring

Builds the store, backend client and data services from settings.
Everything is constructed explicitly and handed to callers as one bundle;
there are no module-level singletons besides the cached settings.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from weatherguard.backend.client import RetryConfig, WeatherGuardApiClient
from weatherguard.backend.resources import (
    project_backend,
    task_backend,
    weather_analysis_backend,
)
from weatherguard.exceptions import ServiceConfigurationError
from weatherguard.kv.base import KVStore
from weatherguard.kv.memory import InMemoryKVStore
from weatherguard.kv.redis_store import RedisKVStore
from weatherguard.services.base import ServiceMode
from weatherguard.services.forecast import ForecastCache
from weatherguard.services.projects import ProjectService
from weatherguard.services.tasks import TaskService
from weatherguard.services.weather import WeatherAnalysisService
from weatherguard.utils.config import Settings, get_settings


logger = logging.getLogger(__name__)


@dataclass
class DataServices:
    """Everything a request handler needs to reach cached data."""
    store: KVStore
    projects: ProjectService
    tasks: TaskService
    analyses: WeatherAnalysisService
    forecasts: ForecastCache
    mode: ServiceMode
    api_client: Optional[WeatherGuardApiClient] = None

    def get_stats(self) -> Dict[str, Any]:
        stats = {
            "mode": self.mode.value,
            "projects": self.projects.get_stats(),
            "tasks": self.tasks.get_stats(),
            "analyses": self.analyses.get_stats(),
        }
        if isinstance(self.store, RedisKVStore):
            stats["store"] = self.store.get_stats()
        return stats

    async def close(self) -> None:
        """Close the backend client and the store."""
        if self.api_client is not None:
            await self.api_client.close()
        await self.store.close()
        logger.info("Data services closed")


def create_store(settings: Settings) -> KVStore:
    """Build the configured key-value store."""
    backend = settings.KV_BACKEND.lower()

    if backend == "memory":
        return InMemoryKVStore()

    if backend == "redis":
        return RedisKVStore(
            redis_url=settings.REDIS_URL,
            namespace=settings.KV_NAMESPACE,
            max_connections=settings.REDIS_MAX_CONNECTIONS,
            socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
        )

    raise ServiceConfigurationError(f"Unknown KV backend: {settings.KV_BACKEND}")


def create_api_client(settings: Settings) -> WeatherGuardApiClient:
    """Build the WeatherGuard API client."""
    return WeatherGuardApiClient(
        base_url=settings.WEATHERGUARD_API_URL,
        api_token=settings.WEATHERGUARD_API_TOKEN,
        retry_config=RetryConfig(max_retries=settings.API_MAX_RETRIES),
        timeout=settings.API_TIMEOUT,
    )


def create_data_services(
    settings: Optional[Settings] = None,
    store: Optional[KVStore] = None,
    api_client: Optional[WeatherGuardApiClient] = None,
) -> DataServices:
    """
    Wire the data services.

    Args:
        settings: Settings to use (defaults to get_settings())
        store: Pre-built store, e.g. a shared InMemoryKVStore in tests
        api_client: Pre-built API client; ignored in offline mode

    Returns:
        DataServices bundle; call close() when done
    """
    settings = settings or get_settings()
    store = store or create_store(settings)

    if settings.OFFLINE_MODE:
        if api_client is not None:
            raise ServiceConfigurationError("An API client cannot be used in offline mode")
        mode = ServiceMode.OFFLINE
        backends = (None, None, None)
    else:
        mode = ServiceMode.DELEGATED
        api_client = api_client or create_api_client(settings)
        backends = (
            project_backend(api_client),
            task_backend(api_client),
            weather_analysis_backend(api_client),
        )

    paging = {
        "default_page_size": settings.DEFAULT_PAGE_SIZE,
        "max_page_size": settings.MAX_PAGE_SIZE,
    }
    services = DataServices(
        store=store,
        projects=ProjectService(store, backends[0], mode=mode, **paging),
        tasks=TaskService(store, backends[1], mode=mode, **paging),
        analyses=WeatherAnalysisService(store, backends[2], mode=mode, **paging),
        forecasts=ForecastCache(store, default_ttl_seconds=settings.FORECAST_TTL_SECONDS),
        mode=mode,
        api_client=api_client,
    )

    logger.info(
        f"Data services ready: mode={mode.value}, kv={type(store).__name__}"
    )
    return services
