"""Unit tests for the SQLite document store and store selection."""

import pytest

from src.core.config import DocumentStoreBackend, Settings
from src.core.document_store import (
    DocumentNotFoundError,
    SQLiteDocumentStore,
    create_document_store,
    validate_update_fields,
)
from src.core.pocketbase_store import PocketBaseDocumentStore


@pytest.fixture
async def sqlite_store(tmp_path):
    store = SQLiteDocumentStore(tmp_path / "nested" / "state.db")
    await store.connect()
    yield store
    await store.close()


@pytest.mark.unit
class TestValidateUpdateFields:
    def test_accepts_state_fields(self):
        validate_update_fields({"points": 1, "storageItems": []})

    def test_rejects_empty_payload(self):
        with pytest.raises(ValueError, match="Empty"):
            validate_update_fields({})

    def test_rejects_unknown_field(self):
        with pytest.raises(ValueError, match="Unknown state fields"):
            validate_update_fields({"points": 1, "owner_id": "x"})


@pytest.mark.unit
class TestSQLiteDocumentStore:
    """Tests for SQLiteDocumentStore against a temporary database file."""

    async def test_get_missing_returns_none(self, sqlite_store):
        assert await sqlite_store.get("nobody") is None

    async def test_create_and_get(self, sqlite_store, tmp_path):
        created = await sqlite_store.create("u1", {"points": 500, "tasks": []})

        assert created == {"points": 500, "tasks": []}
        assert await sqlite_store.get("u1") == {"points": 500, "tasks": []}
        assert (tmp_path / "nested" / "state.db").exists()

    async def test_create_never_overwrites(self, sqlite_store):
        await sqlite_store.create("u1", {"points": 10})

        stored = await sqlite_store.create("u1", {"points": 500})

        assert stored == {"points": 10}

    async def test_update_replaces_only_named_fields(self, sqlite_store):
        await sqlite_store.create("u1", {"points": 500, "tasks": [], "categories": [{"id": "general", "name": "General"}]})

        await sqlite_store.update("u1", {"points": 450, "tasks": [{"id": 1, "name": "Read"}]})

        stored = await sqlite_store.get("u1")
        assert stored["points"] == 450
        assert stored["tasks"] == [{"id": 1, "name": "Read"}]
        assert stored["categories"] == [{"id": "general", "name": "General"}]

    async def test_update_adds_absent_field(self, sqlite_store):
        await sqlite_store.create("u1", {"tasks": []})

        await sqlite_store.update("u1", {"storageItems": [{"uniqueId": "abc", "inUse": False}]})

        stored = await sqlite_store.get("u1")
        assert stored["storageItems"] == [{"uniqueId": "abc", "inUse": False}]

    async def test_update_missing_document(self, sqlite_store):
        with pytest.raises(DocumentNotFoundError):
            await sqlite_store.update("ghost", {"points": 1})

    async def test_update_rejects_unknown_field(self, sqlite_store):
        await sqlite_store.create("u1", {"points": 1})

        with pytest.raises(ValueError, match="Unknown state fields"):
            await sqlite_store.update("u1", {"password": "x"})

    async def test_documents_are_isolated_per_user(self, sqlite_store):
        await sqlite_store.create("u1", {"points": 1})
        await sqlite_store.create("u2", {"points": 2})

        await sqlite_store.update("u1", {"points": 100})

        assert (await sqlite_store.get("u2"))["points"] == 2

    async def test_connects_lazily(self, tmp_path):
        store = SQLiteDocumentStore(tmp_path / "lazy.db")
        try:
            await store.create("u1", {"points": 3})
            assert await store.get("u1") == {"points": 3}
        finally:
            await store.close()

    async def test_in_memory_database(self):
        store = SQLiteDocumentStore(":memory:")
        try:
            await store.create("u1", {"points": 3})
            assert await store.get("u1") == {"points": 3}
        finally:
            await store.close()


@pytest.mark.unit
class TestCreateDocumentStore:
    def test_defaults_to_sqlite(self, tmp_path):
        settings = Settings(sqlite_db_path=str(tmp_path / "x.db"))

        assert isinstance(create_document_store(settings), SQLiteDocumentStore)

    async def test_pocketbase_backend(self):
        settings = Settings(
            document_store_backend=DocumentStoreBackend.POCKETBASE,
            pocketbase_url="http://pb.test",
            pocketbase_collection="states",
        )

        store = create_document_store(settings)
        try:
            assert isinstance(store, PocketBaseDocumentStore)
        finally:
            await store.close()
