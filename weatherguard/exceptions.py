"""
Data Layer Exceptions

Errors raised by the key-value store, the backend client and the
cache-aside services.
"""

from typing import Any, Optional


class WeatherGuardError(Exception):
    """Base class for data layer errors."""


class KVStoreError(WeatherGuardError):
    """The key-value store failed to complete an operation."""

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message)
        self.key = key


class BackendError(WeatherGuardError):
    """The authoritative WeatherGuard API rejected or failed a call."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response: Optional[Any] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response = response


class ResourceNotFoundError(WeatherGuardError):
    """A mutation required a record that exists neither in cache nor backend."""

    def __init__(self, resource: str, resource_id: str):
        super().__init__(f"{resource} {resource_id} not found")
        self.resource = resource
        self.resource_id = resource_id


class ServiceConfigurationError(WeatherGuardError):
    """A service was constructed with an invalid mode/backend combination."""
