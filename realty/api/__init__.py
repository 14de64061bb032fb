"""HTTP surface for the listing backend.

This module contains:
- Application factory and lifespan wiring
- Cache operational endpoints
- Health check endpoints and checkers
"""

from realty.api.admin import (
    CacheHealthResponse,
    CacheStatsResponse,
    CacheWarmResponse,
)
from realty.api.health import (
    DEFAULT_HEALTH_CONFIG,
    CacheHealthChecker,
    ComponentCheck,
    DocumentStoreHealthChecker,
    HealthCheckConfig,
    HealthChecker,
    HealthCheckResult,
    HealthService,
    HealthStatus,
    ServiceStatus,
    create_health_service,
    get_health_service,
    reset_health_service,
    set_health_service,
)
from realty.api.routes import ErrorResponse, app, create_app

__all__ = [
    # Health check classes
    "CacheHealthChecker",
    "ComponentCheck",
    "DocumentStoreHealthChecker",
    "HealthCheckConfig",
    "HealthCheckResult",
    "HealthChecker",
    "HealthService",
    # Health check enums
    "HealthStatus",
    "ServiceStatus",
    # Configuration
    "DEFAULT_HEALTH_CONFIG",
    # Health service factory and global instance
    "create_health_service",
    "get_health_service",
    "reset_health_service",
    "set_health_service",
    # Response models
    "CacheHealthResponse",
    "CacheStatsResponse",
    "CacheWarmResponse",
    "ErrorResponse",
    # App factory and instance
    "app",
    "create_app",
]
