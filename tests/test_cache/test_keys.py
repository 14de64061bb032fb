"""Tests for cache key schema and TTL policy."""

import re

import pytest

from realty.cache.keys import (
    HEALTH_CHECK_KEY,
    HEALTH_CHECK_TTL,
    SUBJECT_TTL,
    CacheKeys,
    CachePatterns,
    CacheSubject,
    CacheTTL,
    RecommendationDirection,
    escape_glob,
    query_fingerprint,
    ttl_for,
)


class TestCacheTTL:
    """Tests for CacheTTL values."""

    def test_durations(self) -> None:
        """Test named durations in seconds."""
        assert CacheTTL.SHORT == 300
        assert CacheTTL.MEDIUM == 1800
        assert CacheTTL.LONG == 3600
        assert CacheTTL.VERY_LONG == 86400
        assert CacheTTL.USER_SESSION == 7200

    def test_every_subject_has_a_ttl(self) -> None:
        """Test no subject is left without an expiry."""
        assert set(SUBJECT_TTL) == set(CacheSubject)
        assert all(ttl_for(subject) > 0 for subject in CacheSubject)

    @pytest.mark.parametrize(
        ("subject", "expected"),
        [
            (CacheSubject.USER, CacheTTL.USER_SESSION),
            (CacheSubject.USER_PROFILE, CacheTTL.USER_SESSION),
            (CacheSubject.PROPERTY, CacheTTL.LONG),
            (CacheSubject.PROPERTIES, CacheTTL.SHORT),
            (CacheSubject.USER_PROPERTIES, CacheTTL.MEDIUM),
            (CacheSubject.FAVORITES, CacheTTL.MEDIUM),
            (CacheSubject.FAVORITE_CHECK, CacheTTL.LONG),
            (CacheSubject.RECOMMENDATIONS, CacheTTL.MEDIUM),
            (CacheSubject.USER_SEARCH, CacheTTL.SHORT),
            (CacheSubject.PROPERTY_STATS, CacheTTL.MEDIUM),
        ],
    )
    def test_subject_ttl_class(self, subject: CacheSubject, expected: CacheTTL) -> None:
        """Test each subject maps to its TTL class."""
        assert ttl_for(subject) == int(expected)

    def test_health_check_sentinel(self) -> None:
        """Test the health sentinel key and its short expiry."""
        assert HEALTH_CHECK_KEY == "health:check"
        assert HEALTH_CHECK_TTL == 10


class TestCacheKeys:
    """Tests for CacheKeys."""

    def test_user_keys(self) -> None:
        """Test user record, profile and stats keys."""
        assert CacheKeys.user("42") == "user:42"
        assert CacheKeys.user_profile("42") == "user:profile:42"
        assert CacheKeys.user_stats("42") == "stats:user:42"

    def test_property_keys(self) -> None:
        """Test property, listing and owner page keys."""
        assert CacheKeys.property("7") == "property:7"
        assert CacheKeys.properties("abc123") == "properties:abc123"
        assert CacheKeys.user_properties("42", 2) == "user:properties:42:2"
        assert CacheKeys.property_stats() == "stats:properties"

    def test_favorite_keys(self) -> None:
        """Test favorites page and favorite check keys."""
        assert CacheKeys.favorites("42", 1) == "favorites:42:1"
        assert CacheKeys.favorite_check("42", "7") == "favorite:check:42:7"

    def test_recommendation_keys(self) -> None:
        """Test recommendation page and stats keys."""
        assert CacheKeys.recommendations("42", "sent", 1) == "recommendations:sent:42:1"
        assert (
            CacheKeys.recommendations("42", RecommendationDirection.RECEIVED, 3)
            == "recommendations:received:42:3"
        )
        assert CacheKeys.recommendation_stats("42") == "recommendations:stats:42"

    def test_recommendation_direction_rejected(self) -> None:
        """Test only sent and received are accepted."""
        with pytest.raises(ValueError):
            CacheKeys.recommendations("42", "stats", 1)

    def test_user_search_key(self) -> None:
        """Test user search key."""
        assert CacheKeys.user_search("alice") == "users:search:alice"

    def test_keys_are_deterministic(self) -> None:
        """Test equal parameters give equal keys."""
        assert CacheKeys.favorites("42", 1) == CacheKeys.favorites("42", 1)
        assert CacheKeys.favorites("42", 1) != CacheKeys.favorites("42", 2)


class TestCachePatterns:
    """Tests for CachePatterns."""

    def test_global_patterns(self) -> None:
        """Test patterns that sweep a whole key family."""
        assert CachePatterns.ALL_PROPERTIES == "properties:*"
        assert CachePatterns.ALL_USER_PROPERTIES == "user:properties:*"
        assert CachePatterns.ALL_FAVORITES == "favorites:*"
        assert CachePatterns.ALL_SENT_RECOMMENDATIONS == "recommendations:sent:*"
        assert CachePatterns.ALL_RECEIVED_RECOMMENDATIONS == "recommendations:received:*"

    def test_user_scoped_patterns(self) -> None:
        """Test patterns scoped to one user."""
        assert CachePatterns.favorites("42") == "favorites:42:*"
        assert CachePatterns.favorite_checks("42") == "favorite:check:42:*"
        assert CachePatterns.user_properties("42") == "user:properties:42:*"

    def test_recommendation_patterns(self) -> None:
        """Test recommendation patterns with and without a direction."""
        assert CachePatterns.recommendations("42", "sent") == "recommendations:sent:42:*"
        assert CachePatterns.recommendations("42") == "recommendations:*:42:*"

    def test_ids_are_escaped(self) -> None:
        """Test glob metacharacters in ids cannot widen a sweep."""
        assert CachePatterns.favorites("*") == r"favorites:\*:*"
        assert CachePatterns.favorite_checks("4?") == r"favorite:check:4\?:*"

    def test_escape_glob(self) -> None:
        """Test every Redis glob metacharacter is escaped."""
        assert escape_glob(r"a*b?c[d]e\f") == r"a\*b\?c\[d\]e\\f"
        assert escape_glob("plain-id_01") == "plain-id_01"


class TestQueryFingerprint:
    """Tests for query_fingerprint."""

    def test_is_short_hex(self) -> None:
        """Test the digest is usable as a key segment."""
        digest = query_fingerprint({"page": 1})
        assert re.fullmatch(r"[0-9a-f]{16}", digest)

    def test_independent_of_key_order(self) -> None:
        """Test parameter order does not change the digest."""
        first = query_fingerprint({"city": "Springfield", "page": 1, "limit": 20})
        second = query_fingerprint({"limit": 20, "page": 1, "city": "Springfield"})
        assert first == second

    def test_none_values_dropped(self) -> None:
        """Test an unset filter and an absent filter share a digest."""
        assert query_fingerprint({"page": 1, "city": None}) == query_fingerprint({"page": 1})

    def test_different_queries_differ(self) -> None:
        """Test distinct queries get distinct digests."""
        assert query_fingerprint({"page": 1}) != query_fingerprint({"page": 2})
