"""Partial update payloads for tasks and shop items.

Only fields explicitly set on a patch are applied (``model_dump(exclude_unset=True)``),
so ``frequency=None`` clears the frequency while omitting it leaves it alone.
"""

from pydantic import BaseModel

from src.domain.task import TaskFrequency, TaskUseType


class TaskPatch(BaseModel):
    """Fields of a task that can be edited."""

    name: str | None = None
    points: int | None = None
    category: str | None = None
    use_type: TaskUseType | None = None
    frequency: TaskFrequency | None = None
    completed: bool | None = None


class ShopItemPatch(BaseModel):
    """Fields of a shop item that can be edited."""

    name: str | None = None
    price: int | None = None
    description: str | None = None
    category: str | None = None
