"""Tests for RecommendationService."""

import pytest

from realty.cache.client import KeyValueClient
from realty.cache.keys import CacheKeys
from realty.errors import ConflictError, InvalidRequestError, NotFoundError
from realty.services.recommendations import RecommendationService


@pytest.fixture
async def listing(property_service, property_data):
    """A persisted property listed by the sender."""
    return await property_service.create_property("alice", property_data())


@pytest.fixture
async def users(seed_user):
    """Sender and recipient accounts."""
    return [await seed_user("alice"), await seed_user("bob")]


class TestCreate:
    """Tests for sending recommendations."""

    @pytest.mark.asyncio
    async def test_resolves_recipient_by_email(
        self, recommendation_service: RecommendationService, users, listing
    ) -> None:
        """Test the recipient is found case-insensitively and embedded."""
        entry = await recommendation_service.create(
            "alice", "  Bob@Example.com ", listing.id, message="Take a look"
        )

        assert entry.recommendation.to_user_id == "bob"
        assert entry.recommendation.is_read is False
        assert entry.counterpart is not None and entry.counterpart.id == "bob"
        assert entry.property is not None and entry.property.id == listing.id

    @pytest.mark.asyncio
    async def test_unknown_property(
        self, recommendation_service: RecommendationService, users
    ) -> None:
        """Test a missing property raises NotFoundError."""
        with pytest.raises(NotFoundError, match="Property not found"):
            await recommendation_service.create("alice", "bob@example.com", "nope")

    @pytest.mark.asyncio
    async def test_unknown_recipient(
        self, recommendation_service: RecommendationService, users, listing
    ) -> None:
        """Test an unregistered email raises NotFoundError."""
        with pytest.raises(NotFoundError, match="Recipient user not found"):
            await recommendation_service.create("alice", "carol@example.com", listing.id)

    @pytest.mark.asyncio
    async def test_inactive_recipient(
        self, recommendation_service: RecommendationService, seed_user, listing
    ) -> None:
        """Test inactive users cannot receive recommendations."""
        await seed_user("dave", is_active=False)
        with pytest.raises(NotFoundError):
            await recommendation_service.create("alice", "dave@example.com", listing.id)

    @pytest.mark.asyncio
    async def test_self_recommendation(
        self, recommendation_service: RecommendationService, users, listing
    ) -> None:
        """Test recommending to yourself is rejected."""
        with pytest.raises(InvalidRequestError):
            await recommendation_service.create("alice", "alice@example.com", listing.id)

    @pytest.mark.asyncio
    async def test_duplicate(
        self, recommendation_service: RecommendationService, users, listing
    ) -> None:
        """Test the same recommendation cannot be sent twice."""
        await recommendation_service.create("alice", "bob@example.com", listing.id)
        with pytest.raises(ConflictError):
            await recommendation_service.create("alice", "bob@example.com", listing.id)

    @pytest.mark.asyncio
    async def test_invalidates_both_users(
        self, recommendation_service: RecommendationService, users, listing
    ) -> None:
        """Test the sender's sent view and the recipient's received view update."""
        assert (await recommendation_service.list_sent("alice")).items == []
        assert (await recommendation_service.list_received("bob")).items == []
        assert (await recommendation_service.get_stats("bob")).received == 0

        await recommendation_service.create("alice", "bob@example.com", listing.id)

        assert len((await recommendation_service.list_sent("alice")).items) == 1
        assert len((await recommendation_service.list_received("bob")).items) == 1
        stats = await recommendation_service.get_stats("bob")
        assert (stats.sent, stats.received, stats.unread) == (0, 1, 1)


class TestListing:
    """Tests for sent and received pages."""

    @pytest.mark.asyncio
    async def test_counterparts(
        self, recommendation_service: RecommendationService, users, listing
    ) -> None:
        """Test each direction embeds the other party."""
        await recommendation_service.create("alice", "bob@example.com", listing.id)

        received = await recommendation_service.list_received("bob")
        sent = await recommendation_service.list_sent("alice")

        assert received.items[0].counterpart.email == "alice@example.com"
        assert sent.items[0].counterpart.email == "bob@example.com"
        assert received.items[0].property.id == listing.id

    @pytest.mark.asyncio
    async def test_deleted_property_kept_as_none(
        self,
        recommendation_service: RecommendationService,
        property_service,
        users,
        listing,
    ) -> None:
        """Test a recommendation outlives its property."""
        await recommendation_service.create("alice", "bob@example.com", listing.id)
        await recommendation_service.list_received("bob")
        await property_service.delete_property(listing.id)

        page = await recommendation_service.list_received("bob")

        assert len(page.items) == 1
        assert page.items[0].property is None

    @pytest.mark.asyncio
    async def test_property_update_reaches_cached_pages(
        self,
        recommendation_service: RecommendationService,
        property_service,
        users,
        listing,
    ) -> None:
        """Test a price change shows in already cached sent and received pages."""
        await recommendation_service.create("alice", "bob@example.com", listing.id)
        received = await recommendation_service.list_received("bob")
        sent = await recommendation_service.list_sent("alice")
        assert received.items[0].property.price == sent.items[0].property.price == listing.price

        await property_service.update_property(listing.id, {"price": 999})

        received = await recommendation_service.list_received("bob")
        sent = await recommendation_service.list_sent("alice")
        assert received.items[0].property.price == 999
        assert sent.items[0].property.price == 999

    @pytest.mark.asyncio
    @pytest.mark.parametrize("page", [0, -1])
    async def test_rejects_page_below_one(
        self, recommendation_service: RecommendationService, page: int
    ) -> None:
        """Test non-positive page numbers raise InvalidRequestError."""
        with pytest.raises(InvalidRequestError):
            await recommendation_service.list_received("bob", page)
        with pytest.raises(InvalidRequestError):
            await recommendation_service.list_sent("bob", page)


class TestMarkRead:
    """Tests for marking recommendations read."""

    @pytest.mark.asyncio
    async def test_marks_and_invalidates_both_users(
        self,
        recommendation_service: RecommendationService,
        kv_client: KeyValueClient,
        users,
        listing,
    ) -> None:
        """Test unread counts drop and the sender sees the read flag."""
        entry = await recommendation_service.create("alice", "bob@example.com", listing.id)
        assert (await recommendation_service.get_stats("bob")).unread == 1
        await recommendation_service.list_sent("alice")
        await kv_client.set(CacheKeys.recommendations("carol", "sent", 1), "{}", 60)

        updated = await recommendation_service.mark_read(
            "bob", entry.recommendation.id
        )

        assert updated.is_read is True
        assert (await recommendation_service.get_stats("bob")).unread == 0
        sent = await recommendation_service.list_sent("alice")
        assert sent.items[0].recommendation.is_read is True
        assert await kv_client.get(CacheKeys.recommendations("carol", "sent", 1)) == "{}"

    @pytest.mark.asyncio
    async def test_only_recipient_may_mark(
        self, recommendation_service: RecommendationService, users, listing
    ) -> None:
        """Test the sender cannot mark a recommendation read."""
        entry = await recommendation_service.create("alice", "bob@example.com", listing.id)
        with pytest.raises(NotFoundError):
            await recommendation_service.mark_read("alice", entry.recommendation.id)

    @pytest.mark.asyncio
    async def test_unknown(self, recommendation_service: RecommendationService) -> None:
        """Test an unknown id raises NotFoundError."""
        with pytest.raises(NotFoundError):
            await recommendation_service.mark_read("bob", "nope")
