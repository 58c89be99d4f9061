"""Runs user intents against the current session and reports the outcome as notifications.

This is the seam the presentation layer talks to: each method performs one
reconciler operation, posts a success or error notification, and never lets an
error escape. The return value is the operation's result, or None when it failed.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from src.core.errors import TaskQuestError, classify_error_with_response
from src.domain.category import Category
from src.domain.create_models import ShopItemDraft, TaskDraft
from src.domain.events import DragEndEvent, PointsEarned
from src.domain.shop import ShopItem, StorageItem
from src.domain.task import Task
from src.domain.update_models import ShopItemPatch, TaskPatch
from src.services.drag_handler import DragReassignmentHandler
from src.services.notification_service import NotificationCenter, NotificationLevel
from src.services.session_service import SessionManager
from src.services.state_reconciler import ItemUseResult, StateReconciler


logger = logging.getLogger(__name__)

T = TypeVar("T")


class IntentDispatcher:
    """Presentation-facing entry point for every state-changing intent."""

    def __init__(self, sessions: SessionManager, notifications: NotificationCenter) -> None:
        self._sessions = sessions
        self._notifications = notifications
        self._detach_points: Callable[[], None] | None = None
        sessions.add_session_listener(self._attach)
        self._attach(sessions.reconciler)

    def _attach(self, reconciler: StateReconciler) -> None:
        if self._detach_points is not None:
            self._detach_points()
        self._detach_points = reconciler.on_points_earned(self._on_points_earned)

    def _on_points_earned(self, event: PointsEarned) -> None:
        self._notifications.post(f"Earned {event.points} points!", NotificationLevel.SUCCESS)

    async def run(
        self,
        operation: str,
        intent: Callable[[StateReconciler], Awaitable[T]],
        success: Callable[[T], str | None] | None = None,
    ) -> T | None:
        """Run ``intent`` against the current reconciler and surface the outcome.

        Args:
            operation: Name used in logs
            intent: Coroutine factory receiving the active reconciler
            success: Builds the success message from the result; None posts nothing

        Returns:
            The intent's result, or None if it raised
        """
        try:
            result = await intent(self._sessions.reconciler)
        except TaskQuestError as e:
            response = classify_error_with_response(e)
            logger.info("Intent rejected", extra={"operation": operation, "code": response.code, "error": str(e)})
            self._notifications.post(response.message, NotificationLevel.ERROR, suggestion=response.suggestion)
            return None
        except Exception as e:
            logger.exception("Intent failed unexpectedly", extra={"operation": operation})
            response = classify_error_with_response(e)
            self._notifications.post(response.message, NotificationLevel.ERROR, suggestion=response.suggestion)
            return None

        if success is not None:
            message = success(result)
            if message:
                self._notifications.post(message, NotificationLevel.SUCCESS)
        return result

    # Tasks

    async def add_task(self, draft: TaskDraft) -> Task | None:
        return await self.run("add_task", lambda r: r.add_task(draft), lambda _t: "Task added successfully!")

    async def update_task(self, task_id: int, patch: TaskPatch) -> Task | None:
        return await self.run(
            "update_task", lambda r: r.update_task(task_id, patch), lambda _t: "Task updated successfully!"
        )

    async def delete_task(self, task_id: int) -> None:
        await self.run("delete_task", lambda r: r.delete_task(task_id), lambda _r: "Task deleted successfully!")

    async def toggle_task(self, task_id: int) -> Task | None:
        # Completing is announced through the points-earned event
        return await self.run("toggle_task", lambda r: r.toggle_task_completion(task_id))

    async def drag_end(self, event: DragEndEvent) -> bool:
        reconciler = self._sessions.reconciler

        def moved_message(moved: bool) -> str | None:
            if not moved:
                return None
            names = {c.id: c.name for c in reconciler.snapshot().categories}
            return f"Task moved to {names.get(event.destination_category_id or '', event.destination_category_id)}"

        result = await self.run("drag_end", lambda r: DragReassignmentHandler(r).handle(event), moved_message)
        return bool(result)

    # Categories

    async def add_category(self, name: str) -> Category | None:
        return await self.run(
            "add_category", lambda r: r.add_category(name), lambda _c: "Category added successfully!"
        )

    async def delete_category(self, category_id: str) -> None:
        await self.run(
            "delete_category", lambda r: r.delete_category(category_id), lambda _r: "Category deleted successfully!"
        )

    # Shop and storage

    async def add_shop_item(self, draft: ShopItemDraft) -> ShopItem | None:
        return await self.run(
            "add_shop_item", lambda r: r.add_shop_item(draft), lambda _i: "Shop item added successfully!"
        )

    async def update_shop_item(self, item_id: int, patch: ShopItemPatch) -> ShopItem | None:
        return await self.run(
            "update_shop_item", lambda r: r.update_shop_item(item_id, patch), lambda _i: "Item updated successfully!"
        )

    async def delete_shop_item(self, item_id: int) -> None:
        await self.run(
            "delete_shop_item", lambda r: r.delete_shop_item(item_id), lambda _r: "Shop item deleted successfully!"
        )

    async def buy_item(self, item_id: int) -> StorageItem | None:
        return await self.run("buy_item", lambda r: r.buy_item(item_id), lambda i: f"Bought {i.name} successfully!")

    async def sell_item(self, unique_id: str) -> int | None:
        reconciler = self._sessions.reconciler
        held = {i.unique_id: i.name for i in reconciler.snapshot().storage_items}
        return await self.run(
            "sell_item",
            lambda r: r.sell_item(unique_id),
            lambda price: f"Sold {held.get(unique_id, 'item')} for {price} points",
        )

    async def use_item(self, unique_id: str, *, persist: bool = True) -> ItemUseResult | None:
        """Toggle an item's use; with ``persist`` the storage list is saved afterwards."""

        async def use(reconciler: StateReconciler) -> ItemUseResult:
            result = await reconciler.toggle_item_use(unique_id)
            if persist:
                await reconciler.save_storage()
            return result

        def used_message(result: ItemUseResult) -> str:
            if result.consumed:
                return f"Removed {result.item.name} from storage"
            return f"Started using {result.item.name}"

        return await self.run("use_item", use, used_message)
