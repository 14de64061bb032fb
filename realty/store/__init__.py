"""Document store: source of truth for listing data.

This module contains:
- DocumentStore protocol and filter semantics
- SQLiteDocumentStore backed by aiosqlite
"""

from realty.store.base import (
    ASCENDING,
    DESCENDING,
    Collections,
    DocumentStore,
    Filter,
    Sort,
    matches,
)
from realty.store.sqlite import SQLiteDocumentStore

__all__ = [
    "ASCENDING",
    "DESCENDING",
    "Collections",
    "DocumentStore",
    "Filter",
    "SQLiteDocumentStore",
    "Sort",
    "matches",
]
