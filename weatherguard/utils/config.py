"""
Configuration Management

Uses Pydantic Settings for environment-based configuration.
Loads from .env file automatically.
"""

from typing import Optional
from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # WeatherGuard API (authoritative backend)
    WEATHERGUARD_API_URL: str = "http://localhost:5000"
    WEATHERGUARD_API_TOKEN: Optional[str] = None
    API_TIMEOUT: float = 30.0
    API_MAX_RETRIES: int = 3

    # Run without a backend; the KV store becomes authoritative
    OFFLINE_MODE: bool = False

    # Key-value store
    KV_BACKEND: str = "memory"  # memory | redis
    REDIS_URL: str = "redis://localhost:6379/0"
    KV_NAMESPACE: str = "weatherguard"
    REDIS_MAX_CONNECTIONS: int = 50
    REDIS_SOCKET_TIMEOUT: float = 5.0

    # Forecast sub-cache
    FORECAST_TTL_SECONDS: int = 3600

    # Pagination
    DEFAULT_PAGE_SIZE: int = 10
    MAX_PAGE_SIZE: int = 100

    # Application Settings
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra fields in .env file
        case_sensitive = False  # Allow both UPPERCASE and lowercase


@lru_cache
def get_settings() -> Settings:
    """Get or create cached settings instance."""
    return Settings()
