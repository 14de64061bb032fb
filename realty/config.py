"""Application configuration settings.

This module provides centralized configuration management using environment
variables with sensible defaults. Values are read once at process start.
"""

import os
from dataclasses import dataclass


def _get_int_env(name: str, default: int) -> int:
    """Get an integer value from environment variable.

    Args:
        name: Environment variable name.
        default: Default value if not set or not parseable.

    Returns:
        Integer value from environment.
    """
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    """Get a float value from environment variable."""
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        return default


@dataclass
class Settings:
    """Application settings loaded from environment variables.

    Attributes:
        REDIS_URL: Redis connection URL for caching.
        REDIS_SOCKET_TIMEOUT: Per-request socket timeout in seconds. Bounds how
            long a slow Redis can hold up a cache operation.
        REDIS_CONNECT_ATTEMPTS: Connection attempts at startup before giving up.
        DOCUMENT_DB_PATH: Path of the SQLite document database.
        WARM_POPULAR_LIMIT: Number of recent properties loaded by cache warming.
        LOG_LEVEL: Logging level.
        LOG_FORMAT: Log renderer, "console" or "json".
    """

    # Cache
    REDIS_URL: str = "redis://localhost:6379"
    REDIS_SOCKET_TIMEOUT: float = 2.0
    REDIS_CONNECT_ATTEMPTS: int = 3

    # Document store
    DOCUMENT_DB_PATH: str = "./data/realty.db"

    # Cache warming
    WARM_POPULAR_LIMIT: int = 20

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "console"

    @classmethod
    def from_env(cls) -> "Settings":
        """Create settings from environment variables.

        Returns:
            Settings instance populated from environment.
        """
        return cls(
            REDIS_URL=os.getenv("REDIS_URL", "redis://localhost:6379"),
            REDIS_SOCKET_TIMEOUT=_get_float_env("REDIS_SOCKET_TIMEOUT", 2.0),
            REDIS_CONNECT_ATTEMPTS=_get_int_env("REDIS_CONNECT_ATTEMPTS", 3),
            DOCUMENT_DB_PATH=os.getenv("DOCUMENT_DB_PATH", "./data/realty.db"),
            WARM_POPULAR_LIMIT=_get_int_env("WARM_POPULAR_LIMIT", 20),
            LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
            LOG_FORMAT=os.getenv("LOG_FORMAT", "console"),
        )


# Global settings instance
settings = Settings.from_env()
