"""Domain models and DTOs."""

from src.domain.category import Category, category_slug
from src.domain.create_models import ShopItemDraft, TaskDraft
from src.domain.events import DragEndEvent, PointsEarned
from src.domain.shop import ShopItem, StorageItem
from src.domain.task import Task, TaskFrequency, TaskUseType
from src.domain.update_models import ShopItemPatch, TaskPatch
from src.domain.user_state import UserState


__all__ = [
    "Category",
    "DragEndEvent",
    "PointsEarned",
    "ShopItem",
    "ShopItemDraft",
    "ShopItemPatch",
    "StorageItem",
    "Task",
    "TaskDraft",
    "TaskFrequency",
    "TaskPatch",
    "TaskUseType",
    "UserState",
    "category_slug",
]
