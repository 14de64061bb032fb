"""Shared fixtures: an in-memory Redis stand-in, clients, stores and services."""

import re
import tempfile
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from realty.cache.client import KeyValueClient
from realty.cache.service import ListingCacheService
from realty.models import Location, Property, User
from realty.services import (
    FavoriteService,
    PropertyService,
    RecommendationService,
    UserService,
)
from realty.store.base import Collections
from realty.store.sqlite import SQLiteDocumentStore


def redis_glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Translate a Redis glob (with backslash escapes) to a regex."""
    parts: list[str] = []
    i = 0
    while i < len(pattern):
        char = pattern[i]
        if char == "\\" and i + 1 < len(pattern):
            parts.append(re.escape(pattern[i + 1]))
            i += 2
            continue
        if char == "*":
            parts.append(".*")
        elif char == "?":
            parts.append(".")
        elif char == "[":
            end = pattern.find("]", i + 1)
            if end == -1:
                parts.append(re.escape(char))
            else:
                body = pattern[i + 1 : end].replace("\\", "\\\\")
                if body.startswith("^"):
                    body = "^" + body[1:]
                parts.append(f"[{body}]")
                i = end
        else:
            parts.append(re.escape(char))
        i += 1
    return re.compile("".join(parts) + r"\Z", re.DOTALL)


class FakePipeline:
    """Queues SET EX commands and applies them together on execute()."""

    def __init__(self, redis: "FakeRedis") -> None:
        self._redis = redis
        self._commands: list[tuple[str, str, int | None]] = []

    async def __aenter__(self) -> "FakePipeline":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self._commands.clear()

    def set(self, key: str, value: str, ex: int | None = None) -> "FakePipeline":
        self._commands.append((key, value, ex))
        return self

    async def execute(self) -> list[bool]:
        self._redis.check_failure()
        self._redis.pipelines_executed += 1
        for key, value, ex in self._commands:
            self._redis.put(key, value, ex)
        return [True] * len(self._commands)


class FakeRedis:
    """In-memory subset of redis.asyncio.Redis with expiring keys.

    Time only moves when advance() is called. Setting fail_with makes every
    command raise that exception, simulating an outage.
    """

    def __init__(self) -> None:
        self.now = 0.0
        self.data: dict[str, tuple[str, float]] = {}
        self.fail_with: BaseException | None = None
        self.closed = False
        self.pipelines_executed = 0

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def check_failure(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    def put(self, key: str, value: str, ttl: int | None) -> None:
        # No expiry when ttl is None, as with a plain SET
        expires_at = float("inf") if ttl is None else self.now + ttl
        self.data[key] = (value, expires_at)

    def _live(self, key: str) -> str | None:
        entry = self.data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= self.now:
            del self.data[key]
            return None
        return value

    def ttl(self, key: str) -> float | None:
        """Remaining lifetime of a live key, or None."""
        if self._live(key) is None:
            return None
        return self.data[key][1] - self.now

    def keys(self) -> list[str]:
        return sorted(key for key in list(self.data) if self._live(key) is not None)

    async def ping(self) -> bool:
        self.check_failure()
        return True

    async def get(self, key: str) -> str | None:
        self.check_failure()
        return self._live(key)

    async def set(self, key: str, value: str, ex: int | None = None) -> bool:
        self.check_failure()
        self.put(key, value, ex)
        return True

    async def delete(self, *keys: str) -> int:
        self.check_failure()
        deleted = 0
        for key in keys:
            if self._live(key) is not None:
                del self.data[key]
                deleted += 1
        return deleted

    async def mget(self, keys: list[str]) -> list[str | None]:
        self.check_failure()
        return [self._live(key) for key in keys]

    async def scan_iter(self, match: str = "*", count: int = 10) -> AsyncIterator[str]:  # noqa: ARG002
        self.check_failure()
        regex = redis_glob_to_regex(match)
        for key in self.keys():
            if regex.match(key):
                yield key

    def pipeline(self, transaction: bool = True) -> FakePipeline:  # noqa: ARG002
        return FakePipeline(self)

    async def info(self, section: str | None = None) -> dict[str, Any]:
        self.check_failure()
        if section == "keyspace":
            return {"db0": {"keys": len(self.keys()), "expires": len(self.keys())}}
        return {"used_memory": 1024, "used_memory_human": "1.00K"}

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def fake_redis() -> FakeRedis:
    """Fresh in-memory Redis."""
    return FakeRedis()


@pytest.fixture
def redis_outage() -> RedisConnectionError:
    """Error raised by every command while Redis is down."""
    return RedisConnectionError("Connection refused")


@pytest.fixture
def unconnected_client(fake_redis: FakeRedis) -> KeyValueClient:
    """Client bound to the fake Redis but not yet connected."""
    return KeyValueClient(
        "redis://localhost:6379",
        connect_attempts=1,
        redis_factory=lambda url, **kwargs: fake_redis,  # noqa: ARG005
    )


@pytest.fixture
async def kv_client(unconnected_client: KeyValueClient) -> KeyValueClient:
    """Connected client backed by the fake Redis."""
    await unconnected_client.connect()
    yield unconnected_client
    await unconnected_client.disconnect()


@pytest.fixture
def cache(kv_client: KeyValueClient) -> ListingCacheService:
    """Listing cache over the fake Redis."""
    return ListingCacheService(kv_client)


@pytest.fixture
async def store() -> SQLiteDocumentStore:
    """Document store in a temporary SQLite file."""
    with tempfile.TemporaryDirectory() as tmpdir:
        store = SQLiteDocumentStore(db_path=str(Path(tmpdir) / "realty.db"))
        await store.initialize()
        yield store
        await store.close()


@pytest.fixture
def property_service(store: SQLiteDocumentStore, cache: ListingCacheService) -> PropertyService:
    return PropertyService(store, cache)


@pytest.fixture
def favorite_service(
    store: SQLiteDocumentStore,
    cache: ListingCacheService,
    property_service: PropertyService,
) -> FavoriteService:
    return FavoriteService(store, cache, property_service)


@pytest.fixture
def recommendation_service(
    store: SQLiteDocumentStore,
    cache: ListingCacheService,
    property_service: PropertyService,
) -> RecommendationService:
    return RecommendationService(store, cache, property_service)


@pytest.fixture
def user_service(store: SQLiteDocumentStore, cache: ListingCacheService) -> UserService:
    return UserService(store, cache)


def _make_property(property_id: str = "42", **overrides: Any) -> Property:
    fields: dict[str, Any] = {
        "id": property_id,
        "title": f"Loft {property_id}",
        "price": 250000,
        "property_type": "apartment",
        "bedrooms": 2,
        "bathrooms": 1,
        "area": 80,
        "location": Location(
            address="1 Main St", city="Springfield", state="IL", zip_code="62701"
        ),
        "created_by": "owner-1",
    }
    fields.update(overrides)
    return Property(**fields)


def _make_user(user_id: str = "u1", **overrides: Any) -> User:
    fields: dict[str, Any] = {
        "id": user_id,
        "email": f"{user_id}@example.com",
        "first_name": "Test",
        "last_name": user_id.upper(),
    }
    fields.update(overrides)
    return User(**fields)


def _property_data(**overrides: Any) -> dict[str, Any]:
    data: dict[str, Any] = {
        "title": "Sunny flat",
        "price": 300000,
        "property_type": "apartment",
        "bedrooms": 3,
        "location": {
            "address": "5 Elm St",
            "city": "Springfield",
            "state": "IL",
            "zip_code": "62701",
        },
    }
    data.update(overrides)
    return data


@pytest.fixture
def make_property():
    """Factory for valid Property models: make_property("7", price=1)."""
    return _make_property


@pytest.fixture
def make_user():
    """Factory for valid User models: make_user("u2", is_active=False)."""
    return _make_user


@pytest.fixture
def property_data():
    """Factory for create_property payloads."""
    return _property_data


@pytest.fixture
def seed_user(store: SQLiteDocumentStore):
    """Persist users in the document store: await seed_user("u1")."""

    async def seed(user_id: str = "u1", **overrides: Any) -> User:
        user = _make_user(user_id, **overrides)
        await store.insert(Collections.USERS, user.model_dump(mode="json"))
        return user

    return seed
