"""Favorite (saved property) operations."""

import asyncio

import structlog

from realty.cache.service import ListingCacheService
from realty.errors import ConflictError, NotFoundError
from realty.models import Favorite, FavoriteEntry, Page, Pagination
from realty.services.properties import PAGE_SIZE, PropertyService, validate_page
from realty.store.base import DESCENDING, Collections, DocumentStore

logger = structlog.get_logger(__name__)


class FavoriteService:
    """Saved properties for a user.

    Favorites pages embed full property records, so they are assembled with
    a bulk cache lookup and filled from the store only for misses.
    """

    def __init__(
        self,
        store: DocumentStore,
        cache: ListingCacheService,
        properties: PropertyService,
    ) -> None:
        self.store = store
        self.cache = cache
        self.properties = properties

    async def list_favorites(self, user_id: str, page: int = 1) -> Page[FavoriteEntry]:
        """List a user's favorites, newest first.

        Favorites whose property no longer exists are left out of the page.
        """
        validate_page(page)
        cached = await self.cache.get_favorites(user_id, page)
        if cached is not None:
            return cached

        filter_ = {"user_id": user_id}
        docs, total = await asyncio.gather(
            self.store.find(
                Collections.FAVORITES,
                filter_,
                sort=[("created_at", DESCENDING)],
                skip=(page - 1) * PAGE_SIZE,
                limit=PAGE_SIZE,
            ),
            self.store.count(Collections.FAVORITES, filter_),
        )
        favorites = [Favorite.model_validate(doc) for doc in docs]
        properties = await self.properties.get_many([fav.property_id for fav in favorites])

        result = Page[FavoriteEntry](
            items=[
                FavoriteEntry(favorite_id=fav.id, property=prop, created_at=fav.created_at)
                for fav, prop in zip(favorites, properties, strict=True)
                if prop is not None
            ],
            pagination=Pagination.of(page, PAGE_SIZE, total),
        )
        await self.cache.set_favorites(user_id, page, result)
        return result

    async def is_favorite(self, user_id: str, property_id: str) -> bool:
        """Whether the user has saved the property."""
        cached = await self.cache.get_favorite_check(user_id, property_id)
        if cached is not None:
            return cached

        doc = await self.store.find_one(
            Collections.FAVORITES, {"user_id": user_id, "property_id": property_id}
        )
        is_favorite = doc is not None
        await self.cache.set_favorite_check(user_id, property_id, is_favorite)
        return is_favorite

    async def add_favorite(self, user_id: str, property_id: str) -> Favorite:
        """Save a property for a user.

        Raises:
            NotFoundError: If the property does not exist.
            ConflictError: If the property is already saved.
        """
        # Raises NotFoundError for unknown properties
        await self.properties.get_property(property_id)

        existing = await self.store.find_one(
            Collections.FAVORITES, {"user_id": user_id, "property_id": property_id}
        )
        if existing is not None:
            raise ConflictError(
                "Property already in favorites",
                details={"property_id": property_id},
            )

        doc = await self.store.insert(
            Collections.FAVORITES, {"user_id": user_id, "property_id": property_id}
        )

        # Invalidate before writing the check so the sweep cannot remove it
        await asyncio.gather(
            self.cache.invalidate_favorites(user_id),
            self.cache.invalidate_user_stats(user_id),
        )
        await self.cache.set_favorite_check(user_id, property_id, True)

        logger.info("favorite_added", user_id=user_id, property_id=property_id)
        return Favorite.model_validate(doc)

    async def remove_favorite(self, user_id: str, property_id: str) -> None:
        """Remove a saved property.

        Raises:
            NotFoundError: If the property is not in the user's favorites.
        """
        existing = await self.store.find_one(
            Collections.FAVORITES, {"user_id": user_id, "property_id": property_id}
        )
        if existing is None:
            raise NotFoundError("favorite", property_id)

        await self.store.delete(Collections.FAVORITES, existing["id"])

        await asyncio.gather(
            self.cache.invalidate_favorites(user_id),
            self.cache.invalidate_user_stats(user_id),
        )
        await self.cache.set_favorite_check(user_id, property_id, False)

        logger.info("favorite_removed", user_id=user_id, property_id=property_id)
