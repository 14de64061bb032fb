"""Cache key schema and TTL policy.

Every key starts with a subject tag and uses colon-separated segments, so
keys of different subjects never collide. Invalidation patterns are built
here too, with glob metacharacters in identifiers escaped so that an id can
never widen a sweep beyond its own key family.
"""

import hashlib
import json
import re
from collections.abc import Mapping
from enum import Enum, IntEnum
from typing import Any


class CacheTTL(IntEnum):
    """Named expiry durations in seconds."""

    SHORT = 300  # 5 minutes
    MEDIUM = 1800  # 30 minutes
    LONG = 3600  # 1 hour
    VERY_LONG = 86400  # 24 hours
    USER_SESSION = 7200  # 2 hours


class CacheSubject(Enum):
    """Kinds of cached data, each bound to one TTL class."""

    USER = "user"
    USER_PROFILE = "user_profile"
    USER_STATS = "user_stats"
    PROPERTY = "property"
    PROPERTIES = "properties"
    USER_PROPERTIES = "user_properties"
    FAVORITES = "favorites"
    FAVORITE_CHECK = "favorite_check"
    RECOMMENDATIONS = "recommendations"
    RECOMMENDATION_STATS = "recommendation_stats"
    USER_SEARCH = "user_search"
    PROPERTY_STATS = "property_stats"


class RecommendationDirection(str, Enum):
    """Which side of a recommendation a listing shows."""

    SENT = "sent"
    RECEIVED = "received"


SUBJECT_TTL: Mapping[CacheSubject, CacheTTL] = {
    CacheSubject.USER: CacheTTL.USER_SESSION,
    CacheSubject.USER_PROFILE: CacheTTL.USER_SESSION,
    CacheSubject.USER_STATS: CacheTTL.MEDIUM,
    CacheSubject.PROPERTY: CacheTTL.LONG,
    CacheSubject.PROPERTIES: CacheTTL.SHORT,
    CacheSubject.USER_PROPERTIES: CacheTTL.MEDIUM,
    CacheSubject.FAVORITES: CacheTTL.MEDIUM,
    CacheSubject.FAVORITE_CHECK: CacheTTL.LONG,
    CacheSubject.RECOMMENDATIONS: CacheTTL.MEDIUM,
    CacheSubject.RECOMMENDATION_STATS: CacheTTL.MEDIUM,
    CacheSubject.USER_SEARCH: CacheTTL.SHORT,
    CacheSubject.PROPERTY_STATS: CacheTTL.MEDIUM,
}

HEALTH_CHECK_KEY = "health:check"
HEALTH_CHECK_TTL = 10

_GLOB_SPECIAL = re.compile(r"([\\*?\[\]])")


def ttl_for(subject: CacheSubject) -> int:
    """Get the TTL in seconds for a cache subject."""
    return int(SUBJECT_TTL[subject])


def escape_glob(value: str) -> str:
    """Escape Redis glob metacharacters in a literal key segment."""
    return _GLOB_SPECIAL.sub(r"\\\1", value)


def query_fingerprint(params: Mapping[str, Any]) -> str:
    """Build a deterministic hash of query parameters.

    Parameters with a None value are dropped so that "not given" and
    "explicitly empty" share a key.

    Args:
        params: Query parameters (filters, sort, page, limit).

    Returns:
        Short hex digest usable as a key segment.
    """
    canonical = json.dumps(
        {k: v for k, v in params.items() if v is not None},
        sort_keys=True,
        separators=(",", ":"),
        default=str,
    )
    return hashlib.md5(canonical.encode()).hexdigest()[:16]


def _direction(direction: RecommendationDirection | str) -> str:
    return RecommendationDirection(direction).value


class CacheKeys:
    """Builder for concrete cache keys."""

    @staticmethod
    def user(user_id: str) -> str:
        return f"user:{user_id}"

    @staticmethod
    def user_profile(user_id: str) -> str:
        return f"user:profile:{user_id}"

    @staticmethod
    def user_stats(user_id: str) -> str:
        return f"stats:user:{user_id}"

    @staticmethod
    def property(property_id: str) -> str:
        return f"property:{property_id}"

    @staticmethod
    def properties(query_hash: str) -> str:
        """Key for a cached property listing or search result."""
        return f"properties:{query_hash}"

    @staticmethod
    def user_properties(user_id: str, page: int) -> str:
        return f"user:properties:{user_id}:{page}"

    @staticmethod
    def favorites(user_id: str, page: int) -> str:
        return f"favorites:{user_id}:{page}"

    @staticmethod
    def favorite_check(user_id: str, property_id: str) -> str:
        return f"favorite:check:{user_id}:{property_id}"

    @staticmethod
    def recommendations(
        user_id: str, direction: RecommendationDirection | str, page: int
    ) -> str:
        """Key for one page of sent or received recommendations.

        Raises:
            ValueError: If direction is not "sent" or "received".
        """
        return f"recommendations:{_direction(direction)}:{user_id}:{page}"

    @staticmethod
    def recommendation_stats(user_id: str) -> str:
        return f"recommendations:stats:{user_id}"

    @staticmethod
    def user_search(query: str) -> str:
        return f"users:search:{query}"

    @staticmethod
    def property_stats() -> str:
        return "stats:properties"


class CachePatterns:
    """Builder for glob patterns used by pattern invalidation."""

    ALL_PROPERTIES = "properties:*"
    ALL_USER_PROPERTIES = "user:properties:*"
    ALL_FAVORITES = "favorites:*"
    ALL_SENT_RECOMMENDATIONS = "recommendations:sent:*"
    ALL_RECEIVED_RECOMMENDATIONS = "recommendations:received:*"

    @staticmethod
    def user_properties(user_id: str) -> str:
        return f"user:properties:{escape_glob(user_id)}:*"

    @staticmethod
    def favorites(user_id: str) -> str:
        return f"favorites:{escape_glob(user_id)}:*"

    @staticmethod
    def favorite_checks(user_id: str) -> str:
        return f"favorite:check:{escape_glob(user_id)}:*"

    @staticmethod
    def recommendations(
        user_id: str, direction: RecommendationDirection | str | None = None
    ) -> str:
        """Pattern for a user's recommendation pages.

        Without a direction, both sent and received pages match.
        """
        segment = "*" if direction is None else _direction(direction)
        return f"recommendations:{segment}:{escape_glob(user_id)}:*"
