"""Per-user state document store: contract and SQLite backend.

A user's whole state lives in one JSON document keyed by the user's opaque id.
Backends only ever replace whole top-level fields of that document, which keeps
every write last-writer-wins per field.
"""

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol

import aiosqlite

from src.core.config import Constants, DocumentStoreBackend, Settings


logger = logging.getLogger(__name__)


class StoreError(RuntimeError):
    """A document store call failed."""


class DocumentNotFoundError(StoreError):
    """An update targeted a user whose document does not exist."""


class DocumentStore(Protocol):
    """Remote document store holding one state document per user."""

    async def get(self, user_id: str) -> dict[str, Any] | None:
        """Return the user's document, or None if it does not exist."""
        ...

    async def create(self, user_id: str, initial: dict[str, Any]) -> dict[str, Any]:
        """Create the document if absent and return what is stored. Never overwrites."""
        ...

    async def update(self, user_id: str, fields: dict[str, Any]) -> None:
        """Replace only the named top-level fields."""
        ...

    async def close(self) -> None:
        """Release connections held by the store."""
        ...


def validate_update_fields(fields: dict[str, Any]) -> None:
    """Reject empty payloads and field names outside the state document."""
    if not fields:
        msg = "Empty update payload"
        raise ValueError(msg)
    unknown = sorted(set(fields) - set(Constants.STATE_FIELDS))
    if unknown:
        msg = f"Unknown state fields: {unknown}. Allowed: {list(Constants.STATE_FIELDS)}"
        raise ValueError(msg)


def _now_iso() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


class SQLiteDocumentStore:
    """Document store backed by a single aiosqlite connection.

    Documents are kept as JSON text; partial updates use ``json_set`` so the
    fields not named in an update are never rewritten.
    """

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = str(db_path)
        self._conn: aiosqlite.Connection | None = None

    async def connect(self) -> None:
        """Open the connection and create the table if needed."""
        if self._conn is not None:
            return

        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)

        try:
            self._conn = await aiosqlite.connect(self._db_path)
            await self._conn.execute("PRAGMA journal_mode = WAL")
            await self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS user_states (
                    user_id TEXT PRIMARY KEY,
                    document TEXT NOT NULL,
                    created TEXT NOT NULL,
                    updated TEXT NOT NULL
                )
                """
            )
            await self._conn.commit()
        except aiosqlite.Error as e:
            logger.error("sqlite_connect_failed", extra={"db_path": self._db_path, "error": str(e)})
            msg = f"Failed to open document store at {self._db_path}: {e}"
            raise StoreError(msg) from e

        logger.info("Opened SQLite document store", extra={"db_path": self._db_path})

    async def _connection(self) -> aiosqlite.Connection:
        if self._conn is None:
            await self.connect()
        assert self._conn is not None  # noqa: S101
        return self._conn

    async def get(self, user_id: str) -> dict[str, Any] | None:
        """Fetch a user's document, None if absent."""
        try:
            conn = await self._connection()
            cursor = await conn.execute("SELECT document FROM user_states WHERE user_id = ?", (user_id,))
            row = await cursor.fetchone()
        except aiosqlite.Error as e:
            logger.error("get_document_failed", extra={"user_id": user_id, "error": str(e)})
            msg = f"Failed to get document for {user_id}: {e}"
            raise StoreError(msg) from e

        if row is None:
            return None

        logger.debug("Retrieved document", extra={"user_id": user_id})
        return json.loads(row[0])

    async def create(self, user_id: str, initial: dict[str, Any]) -> dict[str, Any]:
        """Insert the document unless one already exists, then return the stored copy."""
        now = _now_iso()
        try:
            conn = await self._connection()
            cursor = await conn.execute(
                "INSERT OR IGNORE INTO user_states (user_id, document, created, updated) VALUES (?, ?, ?, ?)",
                (user_id, json.dumps(initial), now, now),
            )
            await conn.commit()
        except aiosqlite.Error as e:
            logger.error("create_document_failed", extra={"user_id": user_id, "error": str(e)})
            msg = f"Failed to create document for {user_id}: {e}"
            raise StoreError(msg) from e

        if cursor.rowcount:
            logger.info("Created document", extra={"user_id": user_id})
        else:
            logger.info("Document already exists, keeping stored copy", extra={"user_id": user_id})

        stored = await self.get(user_id)
        if stored is None:
            msg = f"Document for {user_id} vanished right after creation"
            raise StoreError(msg)
        return stored

    async def update(self, user_id: str, fields: dict[str, Any]) -> None:
        """Replace the named top-level fields of a user's document."""
        validate_update_fields(fields)

        paths = ", ".join("?, json(?)" for _ in fields)
        params: list[Any] = []
        for name, value in fields.items():
            params.extend([f"$.{name}", json.dumps(value)])
        params.extend([_now_iso(), user_id])

        try:
            conn = await self._connection()
            cursor = await conn.execute(
                f"UPDATE user_states SET document = json_set(document, {paths}), updated = ? WHERE user_id = ?",  # noqa: S608
                params,
            )
            await conn.commit()
        except aiosqlite.Error as e:
            logger.error("update_document_failed", extra={"user_id": user_id, "error": str(e)})
            msg = f"Failed to update document for {user_id}: {e}"
            raise StoreError(msg) from e

        if cursor.rowcount == 0:
            msg = f"No state document for user {user_id}"
            raise DocumentNotFoundError(msg)

        logger.info("Updated document", extra={"user_id": user_id, "fields": sorted(fields)})

    async def close(self) -> None:
        """Close the connection if open."""
        if self._conn is None:
            return
        try:
            await self._conn.close()
            logger.info("Closed SQLite document store", extra={"db_path": self._db_path})
        except aiosqlite.Error as e:
            logger.warning("Error closing SQLite connection", extra={"error": str(e)})
        finally:
            self._conn = None


def create_document_store(settings: Settings) -> DocumentStore:
    """Build the document store selected by configuration."""
    if settings.document_store_backend == DocumentStoreBackend.POCKETBASE:
        from src.core.pocketbase_store import PocketBaseDocumentStore  # noqa: PLC0415

        return PocketBaseDocumentStore(
            base_url=settings.pocketbase_url,
            collection=settings.pocketbase_collection,
            token=settings.pocketbase_token,
            timeout=settings.store_timeout_seconds,
        )

    return SQLiteDocumentStore(settings.sqlite_db_path)
