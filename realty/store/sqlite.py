"""SQLite-based document store.

This module provides persistent storage for listing documents using SQLite.
Each document is stored as a JSON body keyed by (collection, id); filtering
and sorting are evaluated in Python over a collection's rows.
"""

import json
import os
import uuid
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from realty.store.base import DESCENDING, Filter, Sort, matches

logger = structlog.get_logger(__name__)

# Default database path
DEFAULT_DB_PATH = "./data/realty.db"


def _now() -> str:
    return datetime.now(UTC).isoformat()


def _sort_key(value: Any) -> tuple[int, Any]:
    # None sorts first; mixed types compare by string form
    if value is None:
        return (0, "")
    if isinstance(value, bool | int | float):
        return (1, value)
    return (2, str(value))


class SQLiteDocumentStore:
    """SQLite-backed implementation of the DocumentStore protocol.

    Example:
        store = SQLiteDocumentStore("./data/realty.db")
        await store.initialize()
        prop = await store.insert("properties", {"title": "Loft", ...})
        found = await store.find("properties", {"is_available": True}, limit=10)
    """

    def __init__(self, db_path: str | None = None) -> None:
        """Initialize the document store.

        Args:
            db_path: Path to SQLite database file.
                    Defaults to DOCUMENT_DB_PATH env var or ./data/realty.db
        """
        self._db_path = db_path or os.environ.get("DOCUMENT_DB_PATH", DEFAULT_DB_PATH)
        self._connection: aiosqlite.Connection | None = None
        self._logger = logger.bind(component="document_store")

    async def initialize(self) -> None:
        """Open the database and create the documents table."""
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)

        self._connection = await aiosqlite.connect(self._db_path)
        self._connection.row_factory = aiosqlite.Row

        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS documents (
                collection TEXT NOT NULL,
                id TEXT NOT NULL,
                body TEXT NOT NULL,
                created_at TEXT NOT NULL,
                PRIMARY KEY (collection, id)
            )
        """)
        await self._connection.commit()
        self._logger.info("document_store_initialized", db_path=self._db_path)

    async def close(self) -> None:
        """Close the database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    @property
    def connection(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise RuntimeError("Document store not initialized")
        return self._connection

    async def _load(self, collection: str) -> list[dict[str, Any]]:
        cursor = await self.connection.execute(
            "SELECT body FROM documents WHERE collection = ? ORDER BY rowid",
            (collection,),
        )
        rows = await cursor.fetchall()
        return [json.loads(row["body"]) for row in rows]

    async def find_by_id(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        cursor = await self.connection.execute(
            "SELECT body FROM documents WHERE collection = ? AND id = ?",
            (collection, doc_id),
        )
        row = await cursor.fetchone()
        return json.loads(row["body"]) if row else None

    async def find_one(
        self, collection: str, filter_: Filter | None = None
    ) -> dict[str, Any] | None:
        results = await self.find(collection, filter_, limit=1)
        return results[0] if results else None

    async def find(
        self,
        collection: str,
        filter_: Filter | None = None,
        sort: Sort | None = None,
        skip: int = 0,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Find documents matching a filter.

        Args:
            collection: Collection name.
            filter_: Field conditions, see realty.store.base.
            sort: (field, direction) pairs, applied left to right.
            skip: Number of matching documents to skip.
            limit: Maximum number of documents to return.

        Returns:
            Matching documents.
        """
        documents = [doc for doc in await self._load(collection) if matches(doc, filter_)]

        # Stable sorts applied in reverse give multi-key ordering
        for field_name, direction in reversed(list(sort or [])):
            documents.sort(
                key=lambda doc, f=field_name: _sort_key(doc.get(f)),
                reverse=direction == DESCENDING,
            )

        end = None if limit is None else skip + limit
        return documents[skip:end]

    async def count(self, collection: str, filter_: Filter | None = None) -> int:
        if not filter_:
            cursor = await self.connection.execute(
                "SELECT COUNT(*) FROM documents WHERE collection = ?", (collection,)
            )
            row = await cursor.fetchone()
            return int(row[0]) if row else 0
        return sum(1 for doc in await self._load(collection) if matches(doc, filter_))

    async def insert(self, collection: str, document: Mapping[str, Any]) -> dict[str, Any]:
        """Insert a document.

        Assigns an id and created_at/updated_at timestamps when missing.

        Returns:
            The stored document.

        Raises:
            aiosqlite.IntegrityError: If a document with the same id exists.
        """
        now = _now()
        stored = {"created_at": now, "updated_at": now, **document}
        stored.setdefault("id", uuid.uuid4().hex)

        await self.connection.execute(
            "INSERT INTO documents (collection, id, body, created_at) VALUES (?, ?, ?, ?)",
            (collection, stored["id"], json.dumps(stored, default=str), now),
        )
        await self.connection.commit()
        self._logger.debug("document_inserted", collection=collection, doc_id=stored["id"])
        return stored

    async def update(
        self, collection: str, doc_id: str, changes: Mapping[str, Any]
    ) -> dict[str, Any] | None:
        existing = await self.find_by_id(collection, doc_id)
        if existing is None:
            return None

        updated = {**existing, **changes, "id": doc_id, "updated_at": _now()}
        await self.connection.execute(
            "UPDATE documents SET body = ? WHERE collection = ? AND id = ?",
            (json.dumps(updated, default=str), collection, doc_id),
        )
        await self.connection.commit()
        self._logger.debug("document_updated", collection=collection, doc_id=doc_id)
        return updated

    async def delete(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        existing = await self.find_by_id(collection, doc_id)
        if existing is None:
            return None

        await self.connection.execute(
            "DELETE FROM documents WHERE collection = ? AND id = ?",
            (collection, doc_id),
        )
        await self.connection.commit()
        self._logger.debug("document_deleted", collection=collection, doc_id=doc_id)
        return existing

    async def delete_many(self, collection: str, filter_: Filter | None = None) -> int:
        doomed = [doc["id"] for doc in await self._load(collection) if matches(doc, filter_)]
        if not doomed:
            return 0

        await self.connection.executemany(
            "DELETE FROM documents WHERE collection = ? AND id = ?",
            [(collection, doc_id) for doc_id in doomed],
        )
        await self.connection.commit()
        self._logger.debug("documents_deleted", collection=collection, count=len(doomed))
        return len(doomed)

    async def ping(self) -> bool:
        try:
            cursor = await self.connection.execute("SELECT 1")
            row = await cursor.fetchone()
        except (RuntimeError, aiosqlite.Error) as e:
            self._logger.warning("document_store_ping_failed", error=str(e))
            return False
        return row is not None and row[0] == 1
