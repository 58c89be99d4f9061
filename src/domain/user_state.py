"""User state aggregate and its document representation."""

import copy
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from src.core.config import Constants
from src.domain.category import Category
from src.domain.shop import ShopItem, StorageItem
from src.domain.task import Task


class UserState(BaseModel):
    """Everything one user owns: points, tasks, categories, shop and storage."""

    model_config = ConfigDict(populate_by_name=True)

    points: int = Field(default=0, description="Current point balance")
    tasks: list[Task] = Field(default_factory=list)
    categories: list[Category] = Field(default_factory=list)
    shop_items: list[ShopItem] = Field(default_factory=list, alias="shopItems")
    storage_items: list[StorageItem] = Field(default_factory=list, alias="storageItems")

    def to_document(self) -> dict[str, Any]:
        """Serialize to the stored document shape (camelCase keys)."""
        return self.model_dump(by_alias=True, mode="json")


def seed_document(*, default_points: int) -> dict[str, Any]:
    """Build the document written for a user on first login."""
    return {
        "points": default_points,
        "tasks": [],
        "categories": [dict(c) for c in Constants.DEFAULT_CATEGORIES],
        "shopItems": [dict(i) for i in Constants.DEFAULT_SHOP_ITEMS],
        "storageItems": [],
    }


def missing_fields(document: dict[str, Any]) -> list[str]:
    """Return the top-level state fields absent (or null) in a stored document."""
    return [name for name in Constants.STATE_FIELDS if document.get(name) is None]


def fill_missing_fields(document: dict[str, Any], *, default_points: int) -> dict[str, Any]:
    """Return a copy of ``document`` with absent state fields taken from the seed.

    An explicit zero balance is kept; only a missing or null ``points`` gets the default.
    """
    seed = seed_document(default_points=default_points)
    filled = copy.deepcopy(document)
    for name in missing_fields(document):
        filled[name] = seed[name]
    return filled
