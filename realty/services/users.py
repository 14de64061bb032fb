"""User lookup, search and profile operations."""

import asyncio

import structlog

from realty.cache.service import ListingCacheService
from realty.errors import ConflictError, InvalidRequestError, NotFoundError
from realty.models import User, UserProfile, UserSearchResult, UserStats
from realty.store.base import ASCENDING, Collections, DocumentStore

logger = structlog.get_logger(__name__)

SEARCH_LIMIT = 10


class UserService:
    """Users as seen by the rest of the listing backend."""

    def __init__(self, store: DocumentStore, cache: ListingCacheService) -> None:
        self.store = store
        self.cache = cache

    async def get_user(self, user_id: str) -> User:
        """Get one user.

        Raises:
            NotFoundError: If the user does not exist.
        """
        cached = await self.cache.get_user(user_id)
        if cached is not None:
            return cached

        doc = await self.store.find_by_id(Collections.USERS, user_id)
        if doc is None:
            raise NotFoundError("user", user_id)

        user = User.model_validate(doc)
        await self.cache.set_user(user)
        return user

    async def create_user(self, email: str, first_name: str, last_name: str) -> User:
        """Register a user.

        Raises:
            ConflictError: If the email is already registered.
        """
        email = email.strip().lower()
        if await self.store.find_one(Collections.USERS, {"email": email}) is not None:
            raise ConflictError("Email already registered", details={"email": email})

        draft = User(id="draft", email=email, first_name=first_name, last_name=last_name)
        doc = await self.store.insert(
            Collections.USERS, draft.model_dump(mode="json", exclude={"id", "created_at"})
        )
        user = User.model_validate(doc)
        logger.info("user_created", user_id=user.id)
        return user

    async def search_users(
        self, query: str, exclude_user_id: str | None = None
    ) -> UserSearchResult:
        """Find active users whose email contains the query.

        The cached result is shared by every requester, so the requester is
        removed after the lookup rather than in the store filter.

        Raises:
            InvalidRequestError: If the query is blank.
        """
        normalized = query.strip().lower()
        if not normalized:
            raise InvalidRequestError("Email query parameter is required")

        result = await self.cache.get_user_search(normalized)
        if result is None:
            docs = await self.store.find(
                Collections.USERS,
                {"email": {"$contains": normalized}, "is_active": True},
                sort=[("email", ASCENDING)],
                limit=SEARCH_LIMIT + 1,
            )
            result = UserSearchResult(
                query=normalized,
                users=[User.model_validate(doc).summary() for doc in docs],
            )
            await self.cache.set_user_search(normalized, result)

        users = [user for user in result.users if user.id != exclude_user_id]
        return UserSearchResult(query=normalized, users=users[:SEARCH_LIMIT])

    async def get_stats(self, user_id: str) -> UserStats:
        """Activity counters for a user."""
        cached = await self.cache.get_user_stats(user_id)
        if cached is not None:
            return cached

        listed, favorites, sent, received = await asyncio.gather(
            self.store.count(Collections.PROPERTIES, {"created_by": user_id}),
            self.store.count(Collections.FAVORITES, {"user_id": user_id}),
            self.store.count(Collections.RECOMMENDATIONS, {"from_user_id": user_id}),
            self.store.count(Collections.RECOMMENDATIONS, {"to_user_id": user_id}),
        )
        stats = UserStats(
            properties_listed=listed,
            favorites=favorites,
            recommendations_sent=sent,
            recommendations_received=received,
        )
        await self.cache.set_user_stats(user_id, stats)
        return stats

    async def get_profile(self, user_id: str) -> UserProfile:
        """A user together with their activity counters.

        Raises:
            NotFoundError: If the user does not exist.
        """
        cached = await self.cache.get_user_profile(user_id)
        if cached is not None:
            return cached

        user = await self.get_user(user_id)
        profile = UserProfile(
            user=user.summary(),
            member_since=user.created_at,
            stats=await self.get_stats(user_id),
        )
        await self.cache.set_user_profile(user_id, profile)
        return profile

    async def deactivate_user(self, user_id: str) -> User:
        """Hide a user from search and recommendations.

        Raises:
            NotFoundError: If the user does not exist.
        """
        updated = await self.store.update(Collections.USERS, user_id, {"is_active": False})
        if updated is None:
            raise NotFoundError("user", user_id)

        await self.cache.invalidate_user(user_id)
        logger.info("user_deactivated", user_id=user_id)
        return User.model_validate(updated)
