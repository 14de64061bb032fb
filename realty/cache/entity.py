"""Typed cache slots for one subject.

An EntityCache binds a key builder, a TTL class and a codec together so
that the domain cache service deals in domain values rather than strings.
Every failure mode (Redis error, missing key, undecodable value) comes
back as None from reads and False from writes.
"""

from collections.abc import Callable, Sequence
from typing import Any, Generic, TypeVar

import structlog

from realty.cache.client import CacheEntry, KeyValueClient
from realty.cache.codec import Codec, CodecError
from realty.cache.keys import CacheSubject, ttl_for

logger = structlog.get_logger(__name__)

V = TypeVar("V")


class EntityCache(Generic[V]):
    """Cache slot for one subject type.

    Example:
        properties = EntityCache(
            client, CacheSubject.PROPERTY, CacheKeys.property, typed_codec(Property)
        )
        await properties.set(prop, prop.id)
        cached = await properties.get(prop.id)
    """

    def __init__(
        self,
        client: KeyValueClient,
        subject: CacheSubject,
        key_fn: Callable[..., str],
        codec: Codec[V],
    ) -> None:
        """Initialize the slot.

        Args:
            client: Connected key-value client.
            subject: Subject type, selects the TTL class.
            key_fn: Builds the key from identifying parameters.
            codec: Serialization pair for the value type.
        """
        self.client = client
        self.subject = subject
        self.key_fn = key_fn
        self.codec = codec
        self.ttl = ttl_for(subject)

    def key(self, *params: Any) -> str:
        """Build the key for the given identifying parameters."""
        return self.key_fn(*params)

    def _decode(self, key: str, raw: str | None) -> V | None:
        if raw is None:
            return None
        try:
            return self.codec.decode(raw)
        except CodecError as e:
            logger.warning(
                "cache_decode_error",
                subject=self.subject.value,
                key=key,
                codec=self.codec.name,
                error=str(e),
            )
            return None

    def _encode(self, key: str, value: V) -> str | None:
        try:
            return self.codec.encode(value)
        except (TypeError, ValueError) as e:
            logger.error(
                "cache_encode_error",
                subject=self.subject.value,
                key=key,
                codec=self.codec.name,
                error=str(e),
            )
            return None

    async def get(self, *params: Any) -> V | None:
        """Read and decode the value for the given parameters."""
        key = self.key(*params)
        return self._decode(key, await self.client.get(key))

    async def set(self, value: V, *params: Any) -> bool:
        """Encode and write a value under the given parameters."""
        key = self.key(*params)
        encoded = self._encode(key, value)
        if encoded is None:
            return False
        return await self.client.set(key, encoded, self.ttl)

    async def delete(self, *params: Any) -> int:
        """Remove the value for the given parameters."""
        return await self.client.delete(self.key(*params))

    async def get_many(self, params_list: Sequence[tuple[Any, ...]]) -> list[V | None]:
        """Read many values in one round trip, preserving input order."""
        keys = [self.key(*params) for params in params_list]
        raws = await self.client.multi_get(keys)
        return [self._decode(key, raw) for key, raw in zip(keys, raws, strict=True)]

    async def set_many(self, items: Sequence[tuple[V, tuple[Any, ...]]]) -> bool:
        """Write many values in one pipeline.

        Args:
            items: (value, params) pairs.
        """
        entries = []
        for value, params in items:
            key = self.key(*params)
            encoded = self._encode(key, value)
            if encoded is not None:
                entries.append(CacheEntry(key=key, value=encoded, ttl=self.ttl))
        return await self.client.multi_set(entries)
