"""
Forecast Sub-Cache

Short-lived cache for external weather forecasts, keyed by location and
horizon. Expiry is checked on read; an expired entry is deleted and
reported as a miss. There is no background sweep, so entries that are
never read again stay in the store until overwritten.
"""

import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, List, Optional

from pydantic import ValidationError

from weatherguard.kv.base import KVStore
from weatherguard.models.common import KVMetadata, utc_now
from weatherguard.models.weather import ForecastEntry, WeatherForecast


logger = logging.getLogger(__name__)

FORECAST_PREFIX = "weather_forecast:"

DEFAULT_FORECAST_TTL = 3600

FORECAST_TAGS = ["weather_forecast", "cached"]


def location_key(latitude: float, longitude: float, days: int) -> str:
    """Cache key for a forecast request: <lat>_<lon>_<days>."""
    return f"{latitude}_{longitude}_{days}"


class ForecastCache:
    """Read-through TTL cache for forecast lists."""

    def __init__(
        self,
        kv: KVStore,
        default_ttl_seconds: int = DEFAULT_FORECAST_TTL,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.kv = kv
        self.default_ttl_seconds = default_ttl_seconds
        self.clock = clock or utc_now

    @staticmethod
    def storage_key(key: str) -> str:
        return f"{FORECAST_PREFIX}{key}"

    async def store(
        self,
        key: str,
        forecasts: List[WeatherForecast],
        ttl_seconds: Optional[int] = None,
    ) -> ForecastEntry:
        """Store forecasts with an absolute expiry of now + ttl."""
        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        now = self.clock()
        entry = ForecastEntry(
            data=forecasts,
            expires_at=now + timedelta(seconds=ttl),
        )
        metadata = KVMetadata(
            id=key,
            created_at=now.isoformat(),
            updated_at=now.isoformat(),
            tags=FORECAST_TAGS,
        )
        await self.kv.put(self.storage_key(key), entry.to_wire(), metadata)
        logger.debug(f"Cached forecast {key} for {ttl}s")
        return entry

    async def get(self, key: str) -> Optional[List[WeatherForecast]]:
        """
        Return cached forecasts, or None on a miss.

        Expired and unreadable entries are deleted and treated as misses.
        """
        storage_key = self.storage_key(key)
        data = await self.kv.get(storage_key)
        if data is None:
            return None

        try:
            entry = ForecastEntry.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Dropping unreadable forecast entry {key}: {e}")
            await self.kv.delete(storage_key)
            return None

        if self.clock() > entry.expires_at:
            logger.debug(f"Forecast {key} expired at {entry.expires_at.isoformat()}")
            await self.kv.delete(storage_key)
            return None

        return entry.data

    async def get_or_fetch(
        self,
        key: str,
        fetch: Callable[[], Awaitable[List[WeatherForecast]]],
        ttl_seconds: Optional[int] = None,
    ) -> List[WeatherForecast]:
        """Return cached forecasts, fetching and storing them on a miss."""
        cached = await self.get(key)
        if cached is not None:
            return cached

        forecasts = await fetch()
        await self.store(key, forecasts, ttl_seconds)
        return forecasts

    async def invalidate(self, key: str) -> None:
        await self.kv.delete(self.storage_key(key))
