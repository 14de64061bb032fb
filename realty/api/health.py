"""Health checks for the listing backend.

This module provides:
- /health (liveness): The process is up and serving
- /health/live (liveness): Alias for Kubernetes compatibility
- /health/ready (readiness): Cache and document store are reachable

A cache outage only degrades the service, since every read falls back to
the document store. A document store outage makes it not ready.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

import structlog

from realty import __version__

if TYPE_CHECKING:
    from realty.cache.service import ListingCacheService
    from realty.store.base import DocumentStore

logger = structlog.get_logger(__name__)


class HealthStatus(Enum):
    """Health status values."""

    OK = "ok"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class ServiceStatus(Enum):
    """Overall service status."""

    READY = "ready"
    DEGRADED = "degraded"
    NOT_READY = "not_ready"


@dataclass
class ComponentCheck:
    """Result of a component health check.

    Attributes:
        name: Component name.
        status: Health status.
        latency_ms: Check latency in milliseconds.
        error: Error message if not OK.
        details: Additional details.
    """

    name: str
    status: HealthStatus
    latency_ms: float = 0.0
    error: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "status": self.status.value,
            "latency_ms": round(self.latency_ms, 2),
        }
        if self.error:
            result["error"] = self.error
        if self.details:
            result["details"] = self.details
        return result


@dataclass
class HealthCheckConfig:
    """Per-component check timeouts in seconds."""

    cache_timeout: float = 1.0
    store_timeout: float = 2.0


DEFAULT_HEALTH_CONFIG = HealthCheckConfig()


class HealthChecker:
    """Base class for component health checkers.

    Subclasses implement _do_check; check() adds the timeout and latency
    measurement and turns any failure into an UNHEALTHY result.
    """

    def __init__(self, name: str, timeout: float = 5.0) -> None:
        self.name = name
        self.timeout = timeout

    async def check(self) -> ComponentCheck:
        """Run the check within the timeout."""
        start = time.monotonic()
        try:
            result = await asyncio.wait_for(self._do_check(), timeout=self.timeout)
        except TimeoutError:
            result = ComponentCheck(
                name=self.name,
                status=HealthStatus.UNHEALTHY,
                error=f"Timeout after {self.timeout}s",
            )
        except Exception as e:
            result = ComponentCheck(
                name=self.name,
                status=HealthStatus.UNHEALTHY,
                error=str(e),
            )
        result.latency_ms = (time.monotonic() - start) * 1000
        return result

    async def _do_check(self) -> ComponentCheck:
        raise NotImplementedError


class CacheHealthChecker(HealthChecker):
    """Round-trips the cache sentinel key.

    An unhealthy cache is reported as DEGRADED: requests are still served
    from the document store.
    """

    def __init__(
        self,
        cache: "ListingCacheService",
        timeout: float = DEFAULT_HEALTH_CONFIG.cache_timeout,
    ) -> None:
        super().__init__("cache", timeout)
        self.cache = cache

    async def _do_check(self) -> ComponentCheck:
        if await self.cache.health_check():
            return ComponentCheck(
                name=self.name,
                status=HealthStatus.OK,
                details={"metrics": self.cache.client.metrics.to_dict()},
            )
        return ComponentCheck(
            name=self.name,
            status=HealthStatus.DEGRADED,
            error="Cache round trip failed",
        )


class DocumentStoreHealthChecker(HealthChecker):
    """Pings the document store."""

    def __init__(
        self,
        store: "DocumentStore",
        timeout: float = DEFAULT_HEALTH_CONFIG.store_timeout,
    ) -> None:
        super().__init__("document_store", timeout)
        self.store = store

    async def _do_check(self) -> ComponentCheck:
        if await self.store.ping():
            return ComponentCheck(name=self.name, status=HealthStatus.OK)
        return ComponentCheck(
            name=self.name,
            status=HealthStatus.UNHEALTHY,
            error="Ping failed",
        )


@dataclass
class HealthCheckResult:
    """Result of a full readiness check."""

    status: ServiceStatus
    checks: dict[str, dict[str, Any]]
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    version: str = __version__

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "checks": self.checks,
            "timestamp": self.timestamp.isoformat(),
            "version": self.version,
        }


class HealthService:
    """Runs the registered component checkers.

    Example:
        service = HealthService()
        service.register_checker(CacheHealthChecker(cache))
        service.register_checker(DocumentStoreHealthChecker(store))

        result = await service.readiness()
    """

    def __init__(self, version: str = __version__) -> None:
        self.version = version
        self._checkers: list[HealthChecker] = []

    def register_checker(self, checker: HealthChecker) -> None:
        self._checkers.append(checker)
        logger.debug("health_checker_registered", name=checker.name)

    async def liveness(self) -> dict[str, Any]:
        """Basic liveness check; does not touch dependencies."""
        return {
            "status": "ok",
            "timestamp": datetime.now(UTC).isoformat(),
        }

    async def readiness(self) -> HealthCheckResult:
        """Check every registered component in parallel."""
        results = await asyncio.gather(*(checker.check() for checker in self._checkers))

        checks = {result.name: result.to_dict() for result in results}
        statuses = {result.status for result in results}

        if HealthStatus.UNHEALTHY in statuses:
            status = ServiceStatus.NOT_READY
        elif HealthStatus.DEGRADED in statuses:
            status = ServiceStatus.DEGRADED
        else:
            status = ServiceStatus.READY

        logger.info(
            "health_check_completed",
            status=status.value,
            checks_count=len(checks),
        )
        return HealthCheckResult(status=status, checks=checks, version=self.version)

    async def check_component(self, name: str) -> ComponentCheck | None:
        """Check a single component by name, or None if not registered."""
        for checker in self._checkers:
            if checker.name == name:
                return await checker.check()
        return None


# Global health service instance
_health_service: HealthService | None = None


def get_health_service() -> HealthService | None:
    """Get the global health service instance, or None if not initialized."""
    return _health_service


def set_health_service(service: HealthService) -> None:
    global _health_service
    _health_service = service


def reset_health_service() -> None:
    """Reset the global health service (for testing)."""
    global _health_service
    _health_service = None


def create_health_service(
    cache: "ListingCacheService | None" = None,
    store: "DocumentStore | None" = None,
    config: HealthCheckConfig | None = None,
    version: str = __version__,
) -> HealthService:
    """Create a health service with checkers for the given components.

    Args:
        cache: Listing cache service.
        store: Document store.
        config: Check timeouts.
        version: Service version reported by readiness.

    Returns:
        Configured HealthService.
    """
    config = config or DEFAULT_HEALTH_CONFIG
    service = HealthService(version=version)

    if cache is not None:
        service.register_checker(CacheHealthChecker(cache, timeout=config.cache_timeout))
    if store is not None:
        service.register_checker(
            DocumentStoreHealthChecker(store, timeout=config.store_timeout)
        )

    return service
