"""Domain cache service for listings, favorites and recommendations.

This module exposes a get/set/invalidate trio per cached subject on top of
the key-value client. It never talks to the document store: callers read
through it (get, on miss load from the store, then set) and invalidate it
after committing a mutation.

Invalidation rules:
- user: record, profile, stats, and the user's property, favorites and
  recommendation pages
- property: record, every listing result, every user property page, every
  favorites page, every recommendation page, and the global property stats
- user stats: the user's stats and the profile that embeds them
- favorites: the user's favorites pages and favorite checks
- recommendations: the user's sent and received pages and stats
"""

import asyncio
import time
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

import structlog

from realty.cache.client import KeyValueClient
from realty.cache.codec import BOOL_CODEC, typed_codec
from realty.cache.entity import EntityCache
from realty.cache.keys import (
    HEALTH_CHECK_KEY,
    HEALTH_CHECK_TTL,
    CacheKeys,
    CachePatterns,
    CacheSubject,
    RecommendationDirection,
)
from realty.cache.warming import CacheWarmer, NoOpCacheWarmer
from realty.models import (
    FavoriteEntry,
    Page,
    Property,
    PropertyStats,
    RecommendationEntry,
    RecommendationStats,
    User,
    UserProfile,
    UserSearchResult,
    UserStats,
)

logger = structlog.get_logger(__name__)


class ListingCacheService:
    """Typed cache for the listing backend.

    Example:
        client = KeyValueClient(settings.REDIS_URL)
        await client.connect()
        cache = ListingCacheService(client)

        prop = await cache.get_property(property_id)
        if prop is None:
            prop = await load_property(property_id)
            await cache.set_property(prop)
    """

    def __init__(
        self,
        client: KeyValueClient,
        warmer: CacheWarmer | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            client: Key-value client. It must be connected before any
                operation is called.
            warmer: Pre-population strategy. Defaults to a no-op.
        """
        self.client = client
        self.warmer: CacheWarmer = warmer or NoOpCacheWarmer()

        self.users = EntityCache(client, CacheSubject.USER, CacheKeys.user, typed_codec(User))
        self.user_profiles = EntityCache(
            client, CacheSubject.USER_PROFILE, CacheKeys.user_profile, typed_codec(UserProfile)
        )
        self.user_stats = EntityCache(
            client, CacheSubject.USER_STATS, CacheKeys.user_stats, typed_codec(UserStats)
        )
        self.properties = EntityCache(
            client, CacheSubject.PROPERTY, CacheKeys.property, typed_codec(Property)
        )
        self.listings = EntityCache(
            client,
            CacheSubject.PROPERTIES,
            CacheKeys.properties,
            typed_codec(Page[Property], name="Page[Property]"),
        )
        self.user_properties = EntityCache(
            client,
            CacheSubject.USER_PROPERTIES,
            CacheKeys.user_properties,
            typed_codec(Page[Property], name="Page[Property]"),
        )
        self.favorites = EntityCache(
            client,
            CacheSubject.FAVORITES,
            CacheKeys.favorites,
            typed_codec(Page[FavoriteEntry], name="Page[FavoriteEntry]"),
        )
        self.favorite_checks = EntityCache(
            client, CacheSubject.FAVORITE_CHECK, CacheKeys.favorite_check, BOOL_CODEC
        )
        self.recommendations = EntityCache(
            client,
            CacheSubject.RECOMMENDATIONS,
            CacheKeys.recommendations,
            typed_codec(Page[RecommendationEntry], name="Page[RecommendationEntry]"),
        )
        self.recommendation_stats = EntityCache(
            client,
            CacheSubject.RECOMMENDATION_STATS,
            CacheKeys.recommendation_stats,
            typed_codec(RecommendationStats),
        )
        self.user_searches = EntityCache(
            client, CacheSubject.USER_SEARCH, CacheKeys.user_search, typed_codec(UserSearchResult)
        )
        self.property_stats = EntityCache(
            client, CacheSubject.PROPERTY_STATS, CacheKeys.property_stats, typed_codec(PropertyStats)
        )

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    async def get_user(self, user_id: str) -> User | None:
        return await self.users.get(user_id)

    async def set_user(self, user: User) -> None:
        await self.users.set(user, user.id)

    async def get_user_profile(self, user_id: str) -> UserProfile | None:
        return await self.user_profiles.get(user_id)

    async def set_user_profile(self, user_id: str, profile: UserProfile) -> None:
        await self.user_profiles.set(profile, user_id)

    async def get_user_stats(self, user_id: str) -> UserStats | None:
        return await self.user_stats.get(user_id)

    async def set_user_stats(self, user_id: str, stats: UserStats) -> None:
        await self.user_stats.set(stats, user_id)

    async def invalidate_user_stats(self, user_id: str) -> None:
        """Drop a user's activity counters and the profile that embeds them.

        Call after any change to what the user has listed, saved, sent or
        received.
        """
        deleted = await self.client.delete(
            CacheKeys.user_stats(user_id), CacheKeys.user_profile(user_id)
        )
        logger.debug("cache_user_stats_invalidated", user_id=user_id, deleted_count=deleted)

    async def invalidate_user(self, user_id: str) -> None:
        """Drop everything derived from one user.

        Clears the user record, profile and stats keys, plus every page of
        the user's property list, favorites and recommendations.
        """
        deleted = await self._fan_out(
            self.client.delete(
                CacheKeys.user(user_id),
                CacheKeys.user_profile(user_id),
                CacheKeys.user_stats(user_id),
            ),
            self.client.delete_by_pattern(CachePatterns.user_properties(user_id)),
            self.client.delete_by_pattern(CachePatterns.favorites(user_id)),
            self.client.delete_by_pattern(CachePatterns.recommendations(user_id)),
        )
        logger.info("cache_user_invalidated", user_id=user_id, deleted_count=deleted)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    async def get_property(self, property_id: str) -> Property | None:
        return await self.properties.get(property_id)

    async def set_property(self, prop: Property) -> None:
        await self.properties.set(prop, prop.id)

    async def invalidate_property(self, property_id: str) -> None:
        """Drop a property and every cached view that may embed it.

        Listings are denormalized copies, so this clears all listing, user
        property, favorites and recommendation pages rather than patching
        them. Recommendation stats hold no property data and are kept.
        """
        deleted = await self._fan_out(
            self.client.delete(CacheKeys.property(property_id), CacheKeys.property_stats()),
            self.client.delete_by_pattern(CachePatterns.ALL_PROPERTIES),
            self.client.delete_by_pattern(CachePatterns.ALL_USER_PROPERTIES),
            self.client.delete_by_pattern(CachePatterns.ALL_FAVORITES),
            self.client.delete_by_pattern(CachePatterns.ALL_SENT_RECOMMENDATIONS),
            self.client.delete_by_pattern(CachePatterns.ALL_RECEIVED_RECOMMENDATIONS),
        )
        logger.info(
            "cache_property_invalidated", property_id=property_id, deleted_count=deleted
        )

    async def get_properties(self, query_hash: str) -> Page[Property] | None:
        """Get a cached listing or search result by query fingerprint."""
        return await self.listings.get(query_hash)

    async def set_properties(self, query_hash: str, page: Page[Property]) -> None:
        await self.listings.set(page, query_hash)

    async def invalidate_properties_cache(self) -> None:
        """Drop every cached listing and search result."""
        deleted = await self.client.delete_by_pattern(CachePatterns.ALL_PROPERTIES)
        logger.info("cache_listings_invalidated", deleted_count=deleted)

    async def get_user_properties(self, user_id: str, page: int) -> Page[Property] | None:
        return await self.user_properties.get(user_id, page)

    async def set_user_properties(
        self, user_id: str, page: int, result: Page[Property]
    ) -> None:
        await self.user_properties.set(result, user_id, page)

    async def invalidate_user_properties(self, user_id: str) -> None:
        await self.client.delete_by_pattern(CachePatterns.user_properties(user_id))

    async def get_property_stats(self) -> PropertyStats | None:
        return await self.property_stats.get()

    async def set_property_stats(self, stats: PropertyStats) -> None:
        await self.property_stats.set(stats)

    async def invalidate_property_stats(self) -> None:
        await self.property_stats.delete()

    async def get_multiple_properties(
        self, property_ids: Sequence[str]
    ) -> list[Property | None]:
        """Get many properties in one round trip.

        Returns:
            One entry per id, in the same order; None where not cached.
        """
        return await self.properties.get_many([(pid,) for pid in property_ids])

    async def set_multiple_properties(self, properties: Sequence[Property]) -> None:
        """Cache many properties in one pipeline."""
        await self.properties.set_many([(prop, (prop.id,)) for prop in properties])

    # ------------------------------------------------------------------
    # Favorites
    # ------------------------------------------------------------------

    async def get_favorites(self, user_id: str, page: int) -> Page[FavoriteEntry] | None:
        return await self.favorites.get(user_id, page)

    async def set_favorites(
        self, user_id: str, page: int, result: Page[FavoriteEntry]
    ) -> None:
        await self.favorites.set(result, user_id, page)

    async def get_favorite_check(self, user_id: str, property_id: str) -> bool | None:
        """Whether the user favorited the property, or None if not cached."""
        return await self.favorite_checks.get(user_id, property_id)

    async def set_favorite_check(
        self, user_id: str, property_id: str, is_favorite: bool
    ) -> None:
        await self.favorite_checks.set(is_favorite, user_id, property_id)

    async def invalidate_favorites(self, user_id: str) -> None:
        """Drop a user's favorites pages and favorite checks."""
        deleted = await self._fan_out(
            self.client.delete_by_pattern(CachePatterns.favorites(user_id)),
            self.client.delete_by_pattern(CachePatterns.favorite_checks(user_id)),
        )
        logger.info("cache_favorites_invalidated", user_id=user_id, deleted_count=deleted)

    # ------------------------------------------------------------------
    # Recommendations
    # ------------------------------------------------------------------

    async def get_recommendations(
        self, user_id: str, direction: RecommendationDirection | str, page: int
    ) -> Page[RecommendationEntry] | None:
        return await self.recommendations.get(user_id, direction, page)

    async def set_recommendations(
        self,
        user_id: str,
        direction: RecommendationDirection | str,
        page: int,
        result: Page[RecommendationEntry],
    ) -> None:
        await self.recommendations.set(result, user_id, direction, page)

    async def get_recommendation_stats(self, user_id: str) -> RecommendationStats | None:
        return await self.recommendation_stats.get(user_id)

    async def set_recommendation_stats(
        self, user_id: str, stats: RecommendationStats
    ) -> None:
        await self.recommendation_stats.set(stats, user_id)

    async def invalidate_recommendations(self, user_id: str) -> None:
        """Drop one user's sent and received pages and stats.

        A recommendation event touches two users; call this once for each.
        """
        deleted = await self._fan_out(
            self.client.delete_by_pattern(
                CachePatterns.recommendations(user_id, RecommendationDirection.SENT)
            ),
            self.client.delete_by_pattern(
                CachePatterns.recommendations(user_id, RecommendationDirection.RECEIVED)
            ),
            self.client.delete(CacheKeys.recommendation_stats(user_id)),
        )
        logger.info(
            "cache_recommendations_invalidated", user_id=user_id, deleted_count=deleted
        )

    # ------------------------------------------------------------------
    # User search
    # ------------------------------------------------------------------

    async def get_user_search(self, query: str) -> UserSearchResult | None:
        return await self.user_searches.get(query)

    async def set_user_search(self, query: str, result: UserSearchResult) -> None:
        await self.user_searches.set(result, query)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def health_check(self) -> bool:
        """Round-trip a sentinel key through Redis.

        Returns:
            True if the sentinel was written and read back unchanged.
            Never raises.
        """
        sentinel = str(time.time_ns())
        try:
            written = await self.client.set(HEALTH_CHECK_KEY, sentinel, HEALTH_CHECK_TTL)
            retrieved = await self.client.get(HEALTH_CHECK_KEY)
            await self.client.delete(HEALTH_CHECK_KEY)
        except Exception as e:
            logger.error("cache_health_check_failed", error=str(e))
            return False

        healthy = written and retrieved == sentinel
        if not healthy:
            logger.warning("cache_health_check_unhealthy", written=written)
        return healthy

    async def get_stats(self) -> dict[str, Any] | None:
        """Redis memory and keyspace info plus client counters.

        Returns:
            Stats dictionary, or None if Redis could not be queried.
        """
        memory, keyspace = await asyncio.gather(
            self.client.info("memory"),
            self.client.info("keyspace"),
        )
        if memory is None or keyspace is None:
            return None
        return {
            "memory": memory,
            "keyspace": keyspace,
            "metrics": self.client.metrics.to_dict(),
            "timestamp": datetime.now(UTC).isoformat(),
        }

    async def warm_user_cache(self, user_id: str) -> None:
        """Pre-load a user's data, typically after login."""
        try:
            await self.warmer.warm_user(self, user_id)
        except Exception as e:
            logger.error("cache_warm_user_failed", user_id=user_id, error=str(e))

    async def warm_popular_properties(self) -> None:
        """Pre-load the most requested properties."""
        try:
            await self.warmer.warm_popular_properties(self)
        except Exception as e:
            logger.error("cache_warm_properties_failed", error=str(e))

    @staticmethod
    async def _fan_out(*operations: Any) -> int:
        """Run independent deletes concurrently and sum their counts."""
        results = await asyncio.gather(*operations)
        return sum(results)
