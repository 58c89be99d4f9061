"""Typed read/write access to a user's state document."""

import asyncio
import logging
from collections.abc import Awaitable, Iterable, Sequence
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from src.core.config import Constants
from src.core.document_store import DocumentStore, StoreError
from src.core.errors import PersistenceError
from src.core.logging import span
from src.domain.category import Category
from src.domain.shop import ShopItem, StorageItem
from src.domain.task import Task
from src.domain.user_state import UserState, fill_missing_fields, missing_fields, seed_document


logger = logging.getLogger(__name__)

T = TypeVar("T")


def _dump_all(models: Iterable[BaseModel]) -> list[dict[str, Any]]:
    return [m.model_dump(by_alias=True, mode="json") for m in models]


class StateRepository:
    """Wraps a document store with typed operations.

    Every write replaces exactly the top-level fields it names. Store failures,
    timeouts and undecodable documents all surface as ``PersistenceError``.
    """

    def __init__(self, store: DocumentStore, *, timeout_seconds: float, default_points: int) -> None:
        self._store = store
        self._timeout = timeout_seconds
        self._default_points = default_points

    async def _call(self, operation: str, user_id: str, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout)
        except TimeoutError as e:
            logger.error(
                "store_call_timed_out",
                extra={"operation": operation, "user_id": user_id, "timeout_seconds": self._timeout},
            )
            msg = f"{operation} timed out after {self._timeout}s"
            raise PersistenceError(msg) from e
        except (StoreError, ValueError) as e:
            logger.error("store_call_failed", extra={"operation": operation, "user_id": user_id, "error": str(e)})
            msg = f"{operation} failed: {e}"
            raise PersistenceError(msg) from e

    async def load_state(self, user_id: str) -> UserState:
        """Load a user's state, creating the seeded document on first use.

        Fields missing from an existing document are written back with their seed
        values so later partial updates always find them.
        """
        with span("state_repository.load_state"):
            document = await self._call("get", user_id, self._store.get(user_id))

            if document is None:
                seed = seed_document(default_points=self._default_points)
                document = await self._call("create", user_id, self._store.create(user_id, seed))
                logger.info("Initialized user state", extra={"user_id": user_id})

            absent = missing_fields(document)
            if absent:
                document = fill_missing_fields(document, default_points=self._default_points)
                await self._call(
                    "update", user_id, self._store.update(user_id, {name: document[name] for name in absent})
                )
                logger.info("Filled missing state fields", extra={"user_id": user_id, "fields": absent})

            return self._decode(user_id, document)

    async def fetch_fields(self, user_id: str, names: Sequence[str]) -> UserState:
        """Re-read a user's document; callers copy only ``names`` out of the result.

        Absent fields come back with seed values but are not written.
        """
        with span("state_repository.fetch_fields"):
            unknown = sorted(set(names) - set(Constants.STATE_FIELDS))
            if unknown:
                msg = f"Unknown state fields: {unknown}"
                raise ValueError(msg)

            document = await self._call("get", user_id, self._store.get(user_id))
            if document is None:
                msg = f"No state document for user {user_id}"
                raise PersistenceError(msg)

            return self._decode(user_id, fill_missing_fields(document, default_points=self._default_points))

    def _decode(self, user_id: str, document: dict[str, Any]) -> UserState:
        try:
            return UserState.model_validate(document)
        except ValidationError as e:
            logger.error("state_document_invalid", extra={"user_id": user_id, "error": str(e)})
            msg = f"Stored state for {user_id} is malformed"
            raise PersistenceError(msg) from e

    async def save_fields(self, user_id: str, **fields: Any) -> None:  # noqa: ANN401
        """Write several top-level fields in one update (e.g. points and storageItems)."""
        with span("state_repository.save_fields"):
            await self._call("update", user_id, self._store.update(user_id, fields))

    async def save_tasks(self, user_id: str, tasks: Iterable[Task]) -> None:
        """Replace the stored task list."""
        await self.save_fields(user_id, tasks=_dump_all(tasks))

    async def save_categories(self, user_id: str, categories: Iterable[Category]) -> None:
        """Replace the stored category list."""
        await self.save_fields(user_id, categories=_dump_all(categories))

    async def save_shop_items(self, user_id: str, shop_items: Iterable[ShopItem]) -> None:
        """Replace the stored shop item list."""
        await self.save_fields(user_id, shopItems=_dump_all(shop_items))

    async def save_storage_items(self, user_id: str, storage_items: Iterable[StorageItem]) -> None:
        """Replace the stored storage item list."""
        await self.save_fields(user_id, storageItems=_dump_all(storage_items))

    async def update_points(self, user_id: str, points: int) -> None:
        """Replace the stored point balance."""
        await self.save_fields(user_id, points=points)

    @staticmethod
    def encode_fields(state: UserState, names: Iterable[str]) -> dict[str, Any]:
        """Serialize the named top-level fields of ``state`` into document form."""
        document = state.to_document()
        return {name: document[name] for name in names}
