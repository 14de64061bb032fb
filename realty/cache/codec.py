"""Serialization between domain values and cached strings.

A Codec pairs an encoder and a decoder for one value type. Decoding is
strict: anything that is not valid JSON for the expected type raises
CodecError, which the cache layer treats as a miss.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pydantic import TypeAdapter, ValidationError

V = TypeVar("V")


class CodecError(ValueError):
    """A cached string could not be decoded into the expected type."""


@dataclass(frozen=True)
class Codec(Generic[V]):
    """Encoder/decoder pair for one cached value type.

    Attributes:
        name: Type name used in log events.
        encode: Converts a value to its cached string.
        decode: Converts a cached string back, raising CodecError.
    """

    name: str
    encode: Callable[[V], str]
    decode: Callable[[str | bytes], V]


def typed_codec(tp: type[V] | Any, name: str | None = None) -> Codec[V]:
    """Build a codec for any type Pydantic can validate.

    Args:
        tp: Target type (a model, Page[Model], bool, ...).
        name: Name for log events. Defaults to the type's name.

    Returns:
        Codec that encodes to JSON and validates on decode.
    """
    adapter: TypeAdapter[V] = TypeAdapter(tp)
    codec_name = name or getattr(tp, "__name__", repr(tp))

    def encode(value: V) -> str:
        return adapter.dump_json(value).decode("utf-8")

    def decode(data: str | bytes) -> V:
        # Invalid JSON surfaces as a ValidationError too
        try:
            return adapter.validate_json(data, strict=tp is bool)
        except ValidationError as e:
            raise CodecError(f"Cached value does not match {codec_name}: {e}") from e

    return Codec(name=codec_name, encode=encode, decode=decode)


BOOL_CODEC: Codec[bool] = typed_codec(bool, name="bool")
