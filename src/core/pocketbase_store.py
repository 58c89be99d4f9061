"""Document store backed by a PocketBase collection over its REST API."""

import json
import logging
from typing import Any

import httpx

from src.core.config import Constants
from src.core.document_store import DocumentNotFoundError, StoreError, validate_update_fields


logger = logging.getLogger(__name__)

HTTP_BAD_REQUEST = 400


def sanitize_param(value: str) -> str:
    """Escape a value for safe embedding in a PocketBase filter via json.dumps."""
    return json.dumps(str(value))[1:-1]


def _record_to_document(record: dict[str, Any]) -> dict[str, Any]:
    """Strip PocketBase bookkeeping fields, keeping only state fields that are set."""
    return {name: record[name] for name in Constants.STATE_FIELDS if record.get(name) is not None}


class PocketBaseDocumentStore:
    """One PocketBase record per user, with each top-level state field as a JSON column.

    The record id for a user is cached after the first lookup so updates are a
    single PATCH.
    """

    def __init__(
        self,
        *,
        base_url: str,
        collection: str = "user_states",
        token: str | None = None,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout, headers=headers)
        self._collection = collection
        self._record_ids: dict[str, str] = {}

    @property
    def _records_path(self) -> str:
        return f"/api/collections/{self._collection}/records"

    async def _find_record(self, user_id: str) -> dict[str, Any] | None:
        params = {"filter": f'owner_id = "{sanitize_param(user_id)}"', "perPage": 1}
        try:
            response = await self._client.get(self._records_path, params=params)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("pocketbase_lookup_failed", extra={"user_id": user_id, "error": str(e)})
            msg = f"Failed to look up document for {user_id}: {e}"
            raise StoreError(msg) from e

        items = response.json().get("items", [])
        if not items:
            return None

        record = items[0]
        self._record_ids[user_id] = record["id"]
        return record

    async def get(self, user_id: str) -> dict[str, Any] | None:
        """Fetch a user's document, None if absent."""
        record = await self._find_record(user_id)
        if record is None:
            return None

        logger.debug("Retrieved document", extra={"user_id": user_id, "record_id": record["id"]})
        return _record_to_document(record)

    async def create(self, user_id: str, initial: dict[str, Any]) -> dict[str, Any]:
        """Create the user's record unless it already exists, then return the stored document."""
        existing = await self._find_record(user_id)
        if existing is not None:
            logger.info("Document already exists, keeping stored copy", extra={"user_id": user_id})
            return _record_to_document(existing)

        try:
            response = await self._client.post(self._records_path, json={"owner_id": user_id, **initial})
            if response.status_code == HTTP_BAD_REQUEST:
                # Unique index on owner_id: another session created it between lookup and insert
                raced = await self._find_record(user_id)
                if raced is not None:
                    return _record_to_document(raced)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("pocketbase_create_failed", extra={"user_id": user_id, "error": str(e)})
            msg = f"Failed to create document for {user_id}: {e}"
            raise StoreError(msg) from e

        record = response.json()
        self._record_ids[user_id] = record["id"]
        logger.info("Created document", extra={"user_id": user_id, "record_id": record["id"]})
        return _record_to_document(record)

    async def update(self, user_id: str, fields: dict[str, Any]) -> None:
        """PATCH only the named top-level fields of the user's record."""
        validate_update_fields(fields)

        record_id = self._record_ids.get(user_id)
        if record_id is None:
            record = await self._find_record(user_id)
            if record is None:
                msg = f"No state document for user {user_id}"
                raise DocumentNotFoundError(msg)
            record_id = record["id"]

        try:
            response = await self._client.patch(f"{self._records_path}/{record_id}", json=fields)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(
                "pocketbase_update_failed",
                extra={"user_id": user_id, "record_id": record_id, "error": str(e)},
            )
            msg = f"Failed to update document for {user_id}: {e}"
            raise StoreError(msg) from e

        logger.info("Updated document", extra={"user_id": user_id, "fields": sorted(fields)})

    async def close(self) -> None:
        """Close the HTTP client if this store created it."""
        if self._owns_client:
            await self._client.aclose()
