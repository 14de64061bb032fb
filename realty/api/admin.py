"""Operational endpoints for the listing cache.

This module provides:
- GET /cache/health: round-trip the cache sentinel key
- GET /cache/stats: Redis memory/keyspace info and client counters
- POST /cache/warm: schedule cache warming in the background
"""

from datetime import UTC, datetime
from typing import Any

import structlog
from fastapi import APIRouter, BackgroundTasks, Request
from pydantic import BaseModel, ConfigDict, Field

from realty.cache.service import ListingCacheService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/cache", tags=["Cache"])


# ============================================================================
# Response Models
# ============================================================================


class CacheHealthData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    cache_healthy: bool = Field(..., alias="cacheHealthy")
    timestamp: str


class CacheHealthResponse(BaseModel):
    """Response for the cache health probe."""

    success: bool = True
    data: CacheHealthData


class CacheStatsData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    cache_stats: dict[str, Any] | None = Field(..., alias="cacheStats")
    timestamp: str


class CacheStatsResponse(BaseModel):
    """Response for cache statistics; cacheStats is null if Redis is unreachable."""

    success: bool = True
    data: CacheStatsData


class CacheWarmResponse(BaseModel):
    """Acknowledgement that warming was scheduled."""

    success: bool = True
    message: str


# ============================================================================
# Endpoints
# ============================================================================


def _cache(request: Request) -> ListingCacheService:
    cache: ListingCacheService = request.app.state.cache
    return cache


def _now() -> str:
    return datetime.now(UTC).isoformat()


@router.get(
    "/health",
    response_model=CacheHealthResponse,
    summary="Cache health",
    description="Write, read back and delete a sentinel key.",
)
async def cache_health(request: Request) -> CacheHealthResponse:
    healthy = await _cache(request).health_check()
    return CacheHealthResponse(
        data=CacheHealthData(cache_healthy=healthy, timestamp=_now()),
    )


@router.get(
    "/stats",
    response_model=CacheStatsResponse,
    summary="Cache statistics",
)
async def cache_stats(request: Request) -> CacheStatsResponse:
    stats = await _cache(request).get_stats()
    return CacheStatsResponse(data=CacheStatsData(cache_stats=stats, timestamp=_now()))


@router.post(
    "/warm",
    response_model=CacheWarmResponse,
    status_code=202,
    summary="Warm the cache",
    description="Pre-load popular properties, and one user's data if user_id is given. "
    "Runs after the response is sent.",
)
async def warm_cache(
    request: Request,
    background_tasks: BackgroundTasks,
    user_id: str | None = None,
) -> CacheWarmResponse:
    """Schedule cache warming.

    Args:
        request: Incoming request, used to reach the cache service.
        background_tasks: FastAPI background task queue.
        user_id: Optional user whose data should also be pre-loaded.

    Returns:
        Acknowledgement; warming failures are logged, never reported.
    """
    cache = _cache(request)
    background_tasks.add_task(cache.warm_popular_properties)
    if user_id:
        background_tasks.add_task(cache.warm_user_cache, user_id)

    logger.info("cache_warm_scheduled", user_id=user_id)
    return CacheWarmResponse(message="Cache warming scheduled")
