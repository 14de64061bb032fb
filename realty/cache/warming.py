"""Cache warming strategies.

Warming is an extension point: the cache service delegates to a
CacheWarmer, which defaults to doing nothing. StoreCacheWarmer pre-loads
data from the document store.
"""

from typing import TYPE_CHECKING, Protocol

import structlog

from realty.models import Property, User
from realty.store.base import DESCENDING, Collections, DocumentStore

if TYPE_CHECKING:
    from realty.cache.service import ListingCacheService

logger = structlog.get_logger(__name__)


class CacheWarmer(Protocol):
    """Pre-population strategy for the listing cache."""

    async def warm_user(self, cache: "ListingCacheService", user_id: str) -> None:
        """Pre-load data for one user."""
        ...

    async def warm_popular_properties(self, cache: "ListingCacheService") -> None:
        """Pre-load frequently viewed properties."""
        ...


class NoOpCacheWarmer:
    """Warmer that loads nothing."""

    async def warm_user(self, cache: "ListingCacheService", user_id: str) -> None:  # noqa: ARG002
        logger.debug("cache_warm_user_skipped", user_id=user_id)

    async def warm_popular_properties(self, cache: "ListingCacheService") -> None:  # noqa: ARG002
        logger.debug("cache_warm_properties_skipped")


class StoreCacheWarmer:
    """Warmer that pre-loads records from the document store.

    Attributes:
        store: Document store to read from.
        popular_limit: Number of most recent available properties to load.
    """

    def __init__(self, store: DocumentStore, popular_limit: int = 20) -> None:
        self.store = store
        self.popular_limit = popular_limit

    async def warm_user(self, cache: "ListingCacheService", user_id: str) -> None:
        """Cache the user record and a favorite check for each saved property."""
        doc = await self.store.find_by_id(Collections.USERS, user_id)
        if doc is None:
            logger.debug("cache_warm_user_not_found", user_id=user_id)
            return
        await cache.set_user(User.model_validate(doc))

        favorites = await self.store.find(Collections.FAVORITES, {"user_id": user_id})
        for favorite in favorites:
            await cache.set_favorite_check(user_id, favorite["property_id"], True)

        logger.info("cache_user_warmed", user_id=user_id, favorite_count=len(favorites))

    async def warm_popular_properties(self, cache: "ListingCacheService") -> None:
        """Cache the most recently listed available properties."""
        docs = await self.store.find(
            Collections.PROPERTIES,
            {"is_available": True},
            sort=[("created_at", DESCENDING)],
            limit=self.popular_limit,
        )
        properties = [Property.model_validate(doc) for doc in docs]
        await cache.set_multiple_properties(properties)
        logger.info("cache_properties_warmed", count=len(properties))
