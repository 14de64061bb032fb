"""Property recommendations between users."""

import asyncio

import structlog

from realty.cache.keys import RecommendationDirection
from realty.cache.service import ListingCacheService
from realty.errors import ConflictError, InvalidRequestError, NotFoundError
from realty.models import (
    Page,
    Pagination,
    Recommendation,
    RecommendationEntry,
    RecommendationStats,
    User,
)
from realty.services.properties import PAGE_SIZE, PropertyService, validate_page
from realty.store.base import DESCENDING, Collections, DocumentStore

logger = structlog.get_logger(__name__)


class RecommendationService:
    """Sending, listing and reading recommendations.

    A recommendation appears in the sender's sent pages and the recipient's
    received pages, so creating one invalidates both users' caches.
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

    async def list_received(self, user_id: str, page: int = 1) -> Page[RecommendationEntry]:
        """Recommendations sent to a user, newest first."""
        return await self._list(user_id, RecommendationDirection.RECEIVED, page)

    async def list_sent(self, user_id: str, page: int = 1) -> Page[RecommendationEntry]:
        """Recommendations a user has sent, newest first."""
        return await self._list(user_id, RecommendationDirection.SENT, page)

    async def _list(
        self, user_id: str, direction: RecommendationDirection, page: int
    ) -> Page[RecommendationEntry]:
        validate_page(page)
        cached = await self.cache.get_recommendations(user_id, direction, page)
        if cached is not None:
            return cached

        if direction is RecommendationDirection.RECEIVED:
            own_field, other_field = "to_user_id", "from_user_id"
        else:
            own_field, other_field = "from_user_id", "to_user_id"

        filter_ = {own_field: user_id}
        docs, total = await asyncio.gather(
            self.store.find(
                Collections.RECOMMENDATIONS,
                filter_,
                sort=[("created_at", DESCENDING)],
                skip=(page - 1) * PAGE_SIZE,
                limit=PAGE_SIZE,
            ),
            self.store.count(Collections.RECOMMENDATIONS, filter_),
        )
        recommendations = [Recommendation.model_validate(doc) for doc in docs]

        counterpart_ids = {getattr(rec, other_field) for rec in recommendations}
        user_docs = await self.store.find(
            Collections.USERS, {"id": {"$in": sorted(counterpart_ids)}}
        )
        counterparts = {doc["id"]: User.model_validate(doc).summary() for doc in user_docs}
        properties = await self.properties.get_many(
            [rec.property_id for rec in recommendations]
        )

        result = Page[RecommendationEntry](
            items=[
                RecommendationEntry(
                    recommendation=rec,
                    property=prop,
                    counterpart=counterparts.get(getattr(rec, other_field)),
                )
                for rec, prop in zip(recommendations, properties, strict=True)
            ],
            pagination=Pagination.of(page, PAGE_SIZE, total),
        )
        await self.cache.set_recommendations(user_id, direction, page, result)
        return result

    async def get_stats(self, user_id: str) -> RecommendationStats:
        """Sent, received and unread counts for a user."""
        cached = await self.cache.get_recommendation_stats(user_id)
        if cached is not None:
            return cached

        sent, received, unread = await asyncio.gather(
            self.store.count(Collections.RECOMMENDATIONS, {"from_user_id": user_id}),
            self.store.count(Collections.RECOMMENDATIONS, {"to_user_id": user_id}),
            self.store.count(
                Collections.RECOMMENDATIONS, {"to_user_id": user_id, "is_read": False}
            ),
        )
        stats = RecommendationStats(sent=sent, received=received, unread=unread)
        await self.cache.set_recommendation_stats(user_id, stats)
        return stats

    async def create(
        self,
        from_user_id: str,
        to_user_email: str,
        property_id: str,
        message: str | None = None,
    ) -> RecommendationEntry:
        """Recommend a property to another user, found by email.

        Raises:
            NotFoundError: If the property or an active recipient does not exist.
            InvalidRequestError: If users recommend to themselves.
            ConflictError: If the same recommendation was already sent.
        """
        prop = await self.properties.get_property(property_id)

        recipient_doc = await self.store.find_one(
            Collections.USERS,
            {"email": to_user_email.strip().lower(), "is_active": True},
        )
        if recipient_doc is None:
            raise NotFoundError("recipient user", to_user_email)
        recipient = User.model_validate(recipient_doc)

        if recipient.id == from_user_id:
            raise InvalidRequestError("You cannot recommend a property to yourself")

        existing = await self.store.find_one(
            Collections.RECOMMENDATIONS,
            {
                "from_user_id": from_user_id,
                "to_user_id": recipient.id,
                "property_id": property_id,
            },
        )
        if existing is not None:
            raise ConflictError(
                "You have already recommended this property to this user",
                details={"recommendation_id": existing["id"]},
            )

        draft = Recommendation(
            id="draft",
            from_user_id=from_user_id,
            to_user_id=recipient.id,
            property_id=property_id,
            message=message,
        )
        doc = draft.model_dump(mode="json", exclude={"id", "created_at", "updated_at"})
        recommendation = Recommendation.model_validate(
            await self.store.insert(Collections.RECOMMENDATIONS, doc)
        )

        await asyncio.gather(
            self.cache.invalidate_recommendations(from_user_id),
            self.cache.invalidate_recommendations(recipient.id),
            self.cache.invalidate_user_stats(from_user_id),
            self.cache.invalidate_user_stats(recipient.id),
        )
        logger.info(
            "recommendation_created",
            recommendation_id=recommendation.id,
            from_user_id=from_user_id,
            to_user_id=recipient.id,
        )
        return RecommendationEntry(
            recommendation=recommendation,
            property=prop,
            counterpart=recipient.summary(),
        )

    async def mark_read(self, user_id: str, recommendation_id: str) -> Recommendation:
        """Mark a received recommendation as read.

        Raises:
            NotFoundError: If the user received no recommendation with this id.
        """
        doc = await self.store.find_one(
            Collections.RECOMMENDATIONS, {"id": recommendation_id, "to_user_id": user_id}
        )
        if doc is None:
            raise NotFoundError("recommendation", recommendation_id)

        updated = await self.store.update(
            Collections.RECOMMENDATIONS, recommendation_id, {"is_read": True}
        )
        if updated is None:
            raise NotFoundError("recommendation", recommendation_id)

        recommendation = Recommendation.model_validate(updated)
        # The sender's sent pages embed the read flag too
        await asyncio.gather(
            self.cache.invalidate_recommendations(recommendation.from_user_id),
            self.cache.invalidate_recommendations(user_id),
        )
        return recommendation
