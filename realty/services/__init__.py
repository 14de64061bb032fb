"""Domain services that read through and invalidate the listing cache.

This module contains:
- PropertyService for listings, owner pages and aggregate stats
- FavoriteService for saved properties and favorite checks
- RecommendationService for sent/received recommendations
- UserService for lookup, search and profiles
"""

from realty.services.favorites import FavoriteService
from realty.services.properties import PAGE_SIZE, PropertyQuery, PropertyService
from realty.services.recommendations import RecommendationService
from realty.services.users import SEARCH_LIMIT, UserService

__all__ = [
    # Services
    "FavoriteService",
    "PropertyService",
    "RecommendationService",
    "UserService",
    # Queries and limits
    "PAGE_SIZE",
    "PropertyQuery",
    "SEARCH_LIMIT",
]
