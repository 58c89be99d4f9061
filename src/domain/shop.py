"""Shop and storage domain models."""

from pydantic import BaseModel, ConfigDict, Field


class ShopItem(BaseModel):
    """Reward that can be bought with points."""

    id: int = Field(..., description="Unique shop item ID")
    name: str = Field(..., description="Item name, unique case-insensitively")
    price: int = Field(..., description="Price in points")
    description: str = Field(default="", description="Free-text description")
    category: str = Field(default="general", description="Shop category label")


class StorageItem(ShopItem):
    """One purchased, independently tracked copy of a shop item.

    ``id`` still points at the shop item it was bought from; ``unique_id``
    identifies this particular instance.
    """

    model_config = ConfigDict(populate_by_name=True)

    unique_id: str = Field(..., alias="uniqueId", description="Globally unique instance ID")
    date_acquired: str = Field(..., alias="dateAcquired", description="Purchase date (ISO date)")
    in_use: bool = Field(default=False, alias="inUse", description="Whether the reward is being used")
