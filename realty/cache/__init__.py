"""Caching layer for the listing backend.

This module contains:
- KeyValueClient for Redis access with best-effort semantics
- CacheKeys / CachePatterns for consistent key generation
- TTL policy per cached subject
- Typed codecs and EntityCache slots
- ListingCacheService with read-through and invalidation operations
- Cache warming strategies
"""

from realty.cache.client import (
    CacheEntry,
    CacheMetrics,
    KeyValueClient,
)
from realty.cache.codec import BOOL_CODEC, Codec, CodecError, typed_codec
from realty.cache.entity import EntityCache
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
from realty.cache.service import ListingCacheService
from realty.cache.warming import CacheWarmer, NoOpCacheWarmer, StoreCacheWarmer

__all__ = [
    # Core classes
    "CacheEntry",
    "CacheMetrics",
    "EntityCache",
    "KeyValueClient",
    "ListingCacheService",
    # Keys and TTLs
    "CacheKeys",
    "CachePatterns",
    "CacheSubject",
    "CacheTTL",
    "HEALTH_CHECK_KEY",
    "HEALTH_CHECK_TTL",
    "RecommendationDirection",
    "SUBJECT_TTL",
    "escape_glob",
    "query_fingerprint",
    "ttl_for",
    # Serialization
    "BOOL_CODEC",
    "Codec",
    "CodecError",
    "typed_codec",
    # Warming
    "CacheWarmer",
    "NoOpCacheWarmer",
    "StoreCacheWarmer",
]
