"""Document store contract.

The store is the source of truth for users, properties, favorites and
recommendations. Documents are plain dicts with a string "id" field.

Filters are dicts of field -> condition. A condition is either a literal
(equality) or a dict of operators, all of which must hold:
- {"$ne": value}: field differs from value
- {"$in": [values]}: field equals one of the values
- {"$gte": value} / {"$lte": value}: inclusive range bounds
- {"$contains": text}: case-insensitive substring match on a string field
"""

from collections.abc import Mapping, Sequence
from typing import Any, Protocol

Filter = Mapping[str, Any]
Sort = Sequence[tuple[str, int]]

ASCENDING = 1
DESCENDING = -1


class Collections:
    """Collection names."""

    USERS = "users"
    PROPERTIES = "properties"
    FAVORITES = "favorites"
    RECOMMENDATIONS = "recommendations"


def matches(document: Mapping[str, Any], filter_: Filter | None) -> bool:
    """Check whether a document satisfies a filter.

    Raises:
        ValueError: If a condition uses an unknown operator.
    """
    if not filter_:
        return True
    for field_name, condition in filter_.items():
        value = document.get(field_name)
        if isinstance(condition, Mapping):
            if not all(_check(op, value, operand) for op, operand in condition.items()):
                return False
        elif value != condition:
            return False
    return True


def _check(op: str, value: Any, operand: Any) -> bool:
    if op == "$ne":
        return value != operand
    if op == "$in":
        return value in operand
    if op == "$gte":
        return value is not None and value >= operand
    if op == "$lte":
        return value is not None and value <= operand
    if op == "$contains":
        return isinstance(value, str) and str(operand).lower() in value.lower()
    raise ValueError(f"Unsupported filter operator: {op}")


class DocumentStore(Protocol):
    """CRUD access to named document collections."""

    async def find_by_id(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        """Get one document, or None if it does not exist."""
        ...

    async def find_one(
        self, collection: str, filter_: Filter | None = None
    ) -> dict[str, Any] | None:
        """Get the first document matching a filter."""
        ...

    async def find(
        self,
        collection: str,
        filter_: Filter | None = None,
        sort: Sort | None = None,
        skip: int = 0,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Get documents matching a filter, sorted and sliced."""
        ...

    async def count(self, collection: str, filter_: Filter | None = None) -> int:
        """Count documents matching a filter."""
        ...

    async def insert(self, collection: str, document: Mapping[str, Any]) -> dict[str, Any]:
        """Insert a document, assigning an id if it has none."""
        ...

    async def update(
        self, collection: str, doc_id: str, changes: Mapping[str, Any]
    ) -> dict[str, Any] | None:
        """Merge changes into a document; None if it does not exist."""
        ...

    async def delete(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        """Remove a document, returning it; None if it did not exist."""
        ...

    async def delete_many(self, collection: str, filter_: Filter | None = None) -> int:
        """Remove every document matching a filter."""
        ...

    async def ping(self) -> bool:
        """Whether the store is reachable."""
        ...
