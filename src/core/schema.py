"""PocketBase schema management for the user state collection (code-first)."""

import logging
from typing import Any

import httpx
from pocketbase import PocketBase
from pocketbase.client import ClientResponseError

from src.core.config import settings


logger = logging.getLogger(__name__)

_API_RULE_KEYS = ("listRule", "viewRule", "createRule", "updateRule", "deleteRule")

# Only the owning user may see or touch a state document; nobody deletes one
_OWNER_RULE = "owner_id = @request.auth.id"


def user_state_collection_schema(collection_name: str) -> dict[str, Any]:
    """Expected PocketBase definition of the collection holding user state documents.

    Note: PocketBase v0.22+ uses 'fields' with options flattened onto each field.
    """
    return {
        "name": collection_name,
        "type": "base",
        "system": False,
        "listRule": _OWNER_RULE,
        "viewRule": _OWNER_RULE,
        "createRule": "@request.auth.id != '' && @request.body.owner_id = @request.auth.id",
        "updateRule": _OWNER_RULE,
        "deleteRule": None,
        "fields": [
            {"name": "owner_id", "type": "text", "required": True},
            {"name": "points", "type": "number", "required": False, "min": 0, "onlyInt": True},
            {"name": "tasks", "type": "json", "required": False, "maxSize": 2000000},
            {"name": "categories", "type": "json", "required": False, "maxSize": 200000},
            {"name": "shopItems", "type": "json", "required": False, "maxSize": 500000},
            {"name": "storageItems", "type": "json", "required": False, "maxSize": 2000000},
        ],
        "indexes": [f"CREATE UNIQUE INDEX idx_{collection_name}_owner ON {collection_name} (owner_id)"],
    }


def _plan_update(schema: dict[str, Any], current: dict[str, Any]) -> tuple[dict[str, Any], list[str]]:
    """Work out the PATCH payload needed to bring ``current`` in line with ``schema``.

    Existing fields not named in the schema are kept untouched.

    Returns:
        Tuple of (payload, human-readable list of changes). The list is empty when
        nothing needs to change.
    """
    desired = {f["name"]: f for f in schema["fields"]}
    existing = {f["name"]: f for f in current.get("fields", [])}

    # Keep server-side keys (id, system, hidden) on fields that already exist
    fields = [{**field, **desired.get(name, {})} for name, field in existing.items()]
    added = [name for name in desired if name not in existing]
    fields.extend(desired[name] for name in added)
    changed_fields = [
        name
        for name in desired
        if name in existing and any(existing[name].get(key) != value for key, value in desired[name].items())
    ]

    rules = {key: schema[key] for key in _API_RULE_KEYS if schema[key] != current.get(key)}

    current_indexes = list(current.get("indexes", []))
    new_indexes = [idx for idx in schema["indexes"] if idx not in current_indexes]

    changes = []
    if added:
        changes.append(f"added {added}")
    if changed_fields:
        changes.append(f"updated {changed_fields}")
    if rules:
        changes.append(f"updated rules {list(rules)}")
    if new_indexes:
        changes.append(f"added indexes {new_indexes}")

    payload: dict[str, Any] = {"fields": fields, **rules}
    if new_indexes:
        payload["indexes"] = current_indexes + new_indexes
    return payload, changes


async def _sync_collection(*, client: httpx.AsyncClient, schema: dict[str, Any]) -> None:
    name = schema["name"]
    response = await client.get(f"/api/collections/{name}")

    if not response.is_success:
        response = await client.post("/api/collections", json=schema)
        response.raise_for_status()
        logger.info("Created collection: %s", name)
        return

    payload, changes = _plan_update(schema, response.json())
    if not changes:
        logger.info("Collection %s schema is already up to date", name)
        return

    response = await client.patch(f"/api/collections/{name}", json=payload)
    response.raise_for_status()
    logger.info("Updated collection %s: %s", name, ", ".join(changes))


async def sync_schema(
    pocketbase_url: str | None = None,
    admin_email: str | None = None,
    admin_password: str | None = None,
    collection_name: str | None = None,
) -> None:
    """Create or update the user state collection (idempotent).

    Args:
        pocketbase_url: PocketBase URL, defaults to settings.pocketbase_url.
        admin_email: Admin email, defaults to settings.pocketbase_admin_email.
        admin_password: Admin password, defaults to settings.pocketbase_admin_password.
        collection_name: Collection to sync, defaults to settings.pocketbase_collection.
    """
    logger.info("Starting PocketBase schema sync...")

    url = pocketbase_url or settings.pocketbase_url
    client = PocketBase(url)

    try:
        client.admins.auth_with_password(
            admin_email or settings.pocketbase_admin_email,
            admin_password or settings.pocketbase_admin_password,
        )
        logger.info("Successfully authenticated as admin")
    except ClientResponseError as e:
        logger.error(f"Failed to authenticate as admin: {e}")
        raise

    schema = user_state_collection_schema(collection_name or settings.pocketbase_collection)

    async with httpx.AsyncClient(base_url=url, timeout=30.0) as http_client:
        http_client.headers["Authorization"] = f"Bearer {client.auth_store.token}"
        await _sync_collection(client=http_client, schema=schema)

    logger.info("PocketBase schema sync complete")
