"""Domain models for users, properties, favorites and recommendations.

These Pydantic models are the shapes stored in the document store and the
shapes cached in Redis. Cached values are JSON renderings of these models.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


def utc_now() -> datetime:
    """Current time in UTC."""
    return datetime.now(UTC)


class Document(BaseModel):
    """Base for models persisted in the document store."""

    model_config = ConfigDict(populate_by_name=True)

    id: str


class User(Document):
    """A registered user.

    Attributes:
        email: Login email, stored lowercase.
        first_name: Given name.
        last_name: Family name.
        is_active: Inactive users are hidden from search and cannot
            receive recommendations.
        created_at: Registration time.
    """

    email: str
    first_name: str
    last_name: str
    is_active: bool = True
    created_at: datetime = Field(default_factory=utc_now)

    def summary(self) -> "UserSummary":
        """Public subset of the user shown to other users."""
        return UserSummary(
            id=self.id,
            email=self.email,
            first_name=self.first_name,
            last_name=self.last_name,
        )


class UserSummary(BaseModel):
    """Public subset of a user."""

    id: str
    email: str
    first_name: str
    last_name: str


class UserStats(BaseModel):
    """Activity counters for one user."""

    properties_listed: int = 0
    favorites: int = 0
    recommendations_sent: int = 0
    recommendations_received: int = 0


class UserProfile(BaseModel):
    """A user together with their activity counters."""

    user: UserSummary
    member_since: datetime
    stats: UserStats = Field(default_factory=UserStats)


class PropertyType(str, Enum):
    """Kinds of listed property."""

    APARTMENT = "apartment"
    HOUSE = "house"
    CONDO = "condo"
    TOWNHOUSE = "townhouse"
    VILLA = "villa"
    STUDIO = "studio"
    OTHER = "other"


class Coordinates(BaseModel):
    latitude: float
    longitude: float


class Location(BaseModel):
    """Postal address with optional coordinates."""

    address: str
    city: str
    state: str
    zip_code: str
    coordinates: Coordinates | None = None


class Property(Document):
    """A listed property.

    Attributes:
        title: Listing title.
        description: Free-text description.
        price: Asking price.
        property_type: Kind of property.
        bedrooms: Number of bedrooms.
        bathrooms: Number of bathrooms.
        area: Floor area.
        location: Address.
        amenities: Amenity labels.
        images: Image URLs.
        is_available: Whether the property is still on the market.
        created_by: Id of the listing user.
        created_at: Listing time.
        updated_at: Last modification time.
    """

    title: str
    description: str = ""
    price: float = Field(ge=0)
    property_type: PropertyType = PropertyType.OTHER
    bedrooms: int = Field(default=0, ge=0)
    bathrooms: float = Field(default=0, ge=0)
    area: float = Field(default=0, ge=0)
    location: Location
    amenities: list[str] = Field(default_factory=list)
    images: list[str] = Field(default_factory=list)
    is_available: bool = True
    created_by: str
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class PropertyStats(BaseModel):
    """Aggregate figures over all listed properties."""

    total: int = 0
    available: int = 0
    average_price: float = 0.0
    by_type: dict[str, int] = Field(default_factory=dict)


class Favorite(Document):
    """A user's saved property."""

    user_id: str
    property_id: str
    created_at: datetime = Field(default_factory=utc_now)


class FavoriteEntry(BaseModel):
    """A favorite with the property data embedded for list views."""

    favorite_id: str
    property: Property
    created_at: datetime


class Recommendation(Document):
    """A property one user recommended to another."""

    from_user_id: str
    to_user_id: str
    property_id: str
    message: str | None = Field(default=None, max_length=500)
    is_read: bool = False
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class RecommendationEntry(BaseModel):
    """A recommendation with the property and the other party embedded."""

    recommendation: Recommendation
    property: Property | None = None
    counterpart: UserSummary | None = None


class RecommendationStats(BaseModel):
    """Recommendation counters for one user."""

    sent: int = 0
    received: int = 0
    unread: int = 0


class Pagination(BaseModel):
    """Position of a page within a result set."""

    page: int = Field(ge=1)
    limit: int = Field(ge=1)
    total: int = Field(ge=0)
    pages: int = Field(ge=0)

    @classmethod
    def of(cls, page: int, limit: int, total: int) -> "Pagination":
        """Build pagination info, deriving the page count."""
        return cls(page=page, limit=limit, total=total, pages=-(-total // limit))


class Page(BaseModel, Generic[T]):
    """One page of results."""

    items: list[T]
    pagination: Pagination


class UserSearchResult(BaseModel):
    """Users matching an email search."""

    query: str
    users: list[UserSummary]
