"""Utility modules for the WeatherGuard data layer."""

from .config import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
