"""Pydantic models describing new tasks and shop items before they get an id."""

from pydantic import BaseModel, Field

from src.domain.task import TaskFrequency, TaskUseType


class TaskDraft(BaseModel):
    """User input for a new task."""

    name: str = Field(default="", description="Task name")
    points: int = Field(default=0, description="Points awarded on completion")
    category: str | None = Field(default=None, description="Category ID, 'general' when omitted")
    use_type: TaskUseType | None = Field(default=None, description="Unlimited when omitted")
    frequency: TaskFrequency | None = Field(default=None, description="Recurrence")


class ShopItemDraft(BaseModel):
    """User input for a new shop item."""

    name: str = Field(default="", description="Item name")
    price: int = Field(default=0, description="Price in points")
    description: str = Field(default="", description="Free-text description")
    category: str | None = Field(default=None, description="Shop category label, 'general' when omitted")
