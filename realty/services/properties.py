"""Property listing operations with read-through caching.

Reads check the cache first and populate it from the document store on a
miss. Mutations commit to the store first and then invalidate every cached
view that may embed the property.
"""

import asyncio
from collections.abc import Mapping, Sequence
from typing import Any, Literal

import structlog
from pydantic import BaseModel, Field

from realty.cache.keys import query_fingerprint
from realty.cache.service import ListingCacheService
from realty.errors import InvalidRequestError, NotFoundError
from realty.models import Page, Pagination, Property, PropertyStats, PropertyType
from realty.store.base import ASCENDING, DESCENDING, Collections, DocumentStore

logger = structlog.get_logger(__name__)

# Pages keyed only by page number in the cache use a fixed size
PAGE_SIZE = 20
MAX_LIMIT = 50

SORTABLE_FIELDS = frozenset({"created_at", "price", "bedrooms", "area", "title"})
_IMMUTABLE_FIELDS = frozenset({"id", "created_by", "created_at", "updated_at"})


class PropertyQuery(BaseModel):
    """Listing filters, sort and paging.

    Every field takes part in the cache fingerprint, so two queries share a
    cached result only when they are identical.
    """

    property_type: PropertyType | None = None
    city: str | None = None
    min_price: float | None = Field(default=None, ge=0)
    max_price: float | None = Field(default=None, ge=0)
    min_bedrooms: int | None = Field(default=None, ge=0)
    available_only: bool = True
    sort_by: str = "created_at"
    sort_order: Literal["asc", "desc"] = "desc"
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=PAGE_SIZE, ge=1, le=MAX_LIMIT)

    def fingerprint(self) -> str:
        return query_fingerprint(self.model_dump(mode="json"))

    def to_filter(self) -> dict[str, Any]:
        filter_: dict[str, Any] = {}
        if self.property_type is not None:
            filter_["property_type"] = self.property_type.value
        if self.city is not None:
            filter_["city"] = self.city
        price: dict[str, float] = {}
        if self.min_price is not None:
            price["$gte"] = self.min_price
        if self.max_price is not None:
            price["$lte"] = self.max_price
        if price:
            filter_["price"] = price
        if self.min_bedrooms is not None:
            filter_["bedrooms"] = {"$gte": self.min_bedrooms}
        if self.available_only:
            filter_["is_available"] = True
        return filter_


def validate_page(page: int) -> None:
    """Reject page numbers below 1.

    Raises:
        InvalidRequestError: If page is not a positive integer.
    """
    if page < 1:
        raise InvalidRequestError("Page must be 1 or greater", details={"page": page})


def _to_property(doc: Mapping[str, Any]) -> Property:
    return Property.model_validate(doc)


def _to_document(prop: Property) -> dict[str, Any]:
    doc = prop.model_dump(mode="json")
    # Flattened for filtering; nested location stays the source of truth
    doc["city"] = prop.location.city
    return doc


class PropertyService:
    """Property reads and writes against the store and the cache."""

    def __init__(self, store: DocumentStore, cache: ListingCacheService) -> None:
        self.store = store
        self.cache = cache

    async def get_property(self, property_id: str) -> Property:
        """Get one property.

        Raises:
            NotFoundError: If the property does not exist.
        """
        cached = await self.cache.get_property(property_id)
        if cached is not None:
            return cached

        doc = await self.store.find_by_id(Collections.PROPERTIES, property_id)
        if doc is None:
            raise NotFoundError("property", property_id)

        prop = _to_property(doc)
        await self.cache.set_property(prop)
        return prop

    async def get_many(self, property_ids: Sequence[str]) -> list[Property | None]:
        """Get many properties, cache first, then the store for misses.

        Returns:
            One entry per id in input order; None for ids that do not exist.
        """
        results = await self.cache.get_multiple_properties(property_ids)
        missing = [pid for pid, prop in zip(property_ids, results, strict=True) if prop is None]
        if not missing:
            return results

        docs = await self.store.find(Collections.PROPERTIES, {"id": {"$in": missing}})
        loaded = {doc["id"]: _to_property(doc) for doc in docs}
        if loaded:
            await self.cache.set_multiple_properties(list(loaded.values()))

        return [
            prop if prop is not None else loaded.get(pid)
            for pid, prop in zip(property_ids, results, strict=True)
        ]

    async def list_properties(self, query: PropertyQuery | None = None) -> Page[Property]:
        """List properties matching a query."""
        query = query or PropertyQuery()
        if query.sort_by not in SORTABLE_FIELDS:
            raise InvalidRequestError(f"Cannot sort by {query.sort_by}")
        if (
            query.min_price is not None
            and query.max_price is not None
            and query.min_price > query.max_price
        ):
            raise InvalidRequestError("min_price cannot exceed max_price")

        query_hash = query.fingerprint()
        cached = await self.cache.get_properties(query_hash)
        if cached is not None:
            return cached

        filter_ = query.to_filter()
        direction = DESCENDING if query.sort_order == "desc" else ASCENDING
        docs = await self.store.find(
            Collections.PROPERTIES, filter_, sort=[(query.sort_by, direction)]
        )

        start = (query.page - 1) * query.limit
        page = Page[Property](
            items=[_to_property(doc) for doc in docs[start : start + query.limit]],
            pagination=Pagination.of(query.page, query.limit, len(docs)),
        )
        await self.cache.set_properties(query_hash, page)
        return page

    async def list_user_properties(self, user_id: str, page: int = 1) -> Page[Property]:
        """List the properties one user has listed, newest first."""
        validate_page(page)
        cached = await self.cache.get_user_properties(user_id, page)
        if cached is not None:
            return cached

        filter_ = {"created_by": user_id}
        docs, total = await asyncio.gather(
            self.store.find(
                Collections.PROPERTIES,
                filter_,
                sort=[("created_at", DESCENDING)],
                skip=(page - 1) * PAGE_SIZE,
                limit=PAGE_SIZE,
            ),
            self.store.count(Collections.PROPERTIES, filter_),
        )
        result = Page[Property](
            items=[_to_property(doc) for doc in docs],
            pagination=Pagination.of(page, PAGE_SIZE, total),
        )
        await self.cache.set_user_properties(user_id, page, result)
        return result

    async def get_property_stats(self) -> PropertyStats:
        """Aggregate figures over all properties."""
        cached = await self.cache.get_property_stats()
        if cached is not None:
            return cached

        docs = await self.store.find(Collections.PROPERTIES)
        by_type: dict[str, int] = {}
        for doc in docs:
            kind = doc.get("property_type", PropertyType.OTHER.value)
            by_type[kind] = by_type.get(kind, 0) + 1

        stats = PropertyStats(
            total=len(docs),
            available=sum(1 for doc in docs if doc.get("is_available")),
            average_price=round(sum(doc.get("price", 0) for doc in docs) / len(docs), 2)
            if docs
            else 0.0,
            by_type=by_type,
        )
        await self.cache.set_property_stats(stats)
        return stats

    async def create_property(self, owner_id: str, data: Mapping[str, Any]) -> Property:
        """List a new property.

        Raises:
            pydantic.ValidationError: If data does not describe a property.
        """
        draft = Property.model_validate({**data, "id": "draft", "created_by": owner_id})
        doc = _to_document(draft)
        for field_name in ("id", "created_at", "updated_at"):
            doc.pop(field_name)

        prop = _to_property(await self.store.insert(Collections.PROPERTIES, doc))

        await asyncio.gather(
            self.cache.invalidate_properties_cache(),
            self.cache.invalidate_user_properties(owner_id),
            self.cache.invalidate_property_stats(),
            self.cache.invalidate_user_stats(owner_id),
        )
        await self.cache.set_property(prop)
        logger.info("property_created", property_id=prop.id, owner_id=owner_id)
        return prop

    async def update_property(
        self, property_id: str, changes: Mapping[str, Any]
    ) -> Property:
        """Apply changes to a property.

        Raises:
            NotFoundError: If the property does not exist.
            InvalidRequestError: If changes touch immutable fields.
        """
        forbidden = _IMMUTABLE_FIELDS.intersection(changes)
        if forbidden:
            raise InvalidRequestError(
                "Immutable fields cannot be changed", details={"fields": sorted(forbidden)}
            )

        current = await self.store.find_by_id(Collections.PROPERTIES, property_id)
        if current is None:
            raise NotFoundError("property", property_id)

        merged = _to_property({**current, **changes})
        updated = await self.store.update(
            Collections.PROPERTIES, property_id, _to_document(merged)
        )
        if updated is None:
            raise NotFoundError("property", property_id)

        await self.cache.invalidate_property(property_id)
        logger.info("property_updated", property_id=property_id)
        return _to_property(updated)

    async def delete_property(self, property_id: str) -> None:
        """Remove a property and the favorites that point at it.

        Raises:
            NotFoundError: If the property does not exist.
        """
        favorites = await self.store.find(
            Collections.FAVORITES, {"property_id": property_id}
        )
        deleted = await self.store.delete(Collections.PROPERTIES, property_id)
        if deleted is None:
            raise NotFoundError("property", property_id)
        await self.store.delete_many(Collections.FAVORITES, {"property_id": property_id})

        affected_users = {fav["user_id"] for fav in favorites}
        owner_id = deleted.get("created_by")
        counted_users = affected_users | ({owner_id} if owner_id else set())
        await asyncio.gather(
            self.cache.invalidate_property(property_id),
            *(self.cache.invalidate_favorites(user_id) for user_id in affected_users),
            *(self.cache.invalidate_user_stats(user_id) for user_id in counted_users),
        )
        logger.info(
            "property_deleted",
            property_id=property_id,
            favorites_removed=len(favorites),
        )
