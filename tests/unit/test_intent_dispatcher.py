"""Unit tests for IntentDispatcher: results and the notifications they produce."""

import pytest

from src.domain.create_models import ShopItemDraft, TaskDraft
from src.domain.events import DragEndEvent
from src.domain.update_models import ShopItemPatch, TaskPatch
from src.interface.intent_dispatcher import IntentDispatcher
from src.services.notification_service import NotificationCenter, NotificationLevel
from src.services.session_service import InMemoryAuthProvider, SessionManager
from tests.unit.conftest import USER_ID


@pytest.fixture
def auth() -> InMemoryAuthProvider:
    return InMemoryAuthProvider(USER_ID)


@pytest.fixture
async def sessions(auth, repository) -> SessionManager:
    manager = SessionManager(auth, repository)
    await manager.activate()
    return manager


@pytest.fixture
def notifications() -> NotificationCenter:
    return NotificationCenter(ttl_seconds=3.0, clock=lambda: 0.0)


@pytest.fixture
def dispatcher(sessions, notifications) -> IntentDispatcher:
    return IntentDispatcher(sessions, notifications)


def messages(center: NotificationCenter) -> list[str]:
    return [n.message for n in center.active()]


@pytest.mark.unit
class TestTaskIntents:
    async def test_add_task(self, dispatcher, notifications):
        task = await dispatcher.add_task(TaskDraft(name="Exercise", points=50))

        assert task.name == "Exercise"
        assert messages(notifications) == ["Task added successfully!"]
        assert notifications.current().level == NotificationLevel.SUCCESS

    async def test_duplicate_task_reports_error(self, dispatcher, notifications):
        await dispatcher.add_task(TaskDraft(name="Exercise", points=50))

        result = await dispatcher.add_task(TaskDraft(name="EXERCISE", points=5))

        assert result is None
        current = notifications.current()
        assert current.message == "A task with this name already exists."
        assert current.level == NotificationLevel.ERROR

    async def test_update_and_delete(self, dispatcher, notifications):
        task = await dispatcher.add_task(TaskDraft(name="Exercise", points=50))

        await dispatcher.update_task(task.id, TaskPatch(points=60))
        await dispatcher.delete_task(task.id)

        assert messages(notifications)[-2:] == ["Task updated successfully!", "Task deleted successfully!"]

    async def test_completing_task_announces_points(self, dispatcher, notifications):
        task = await dispatcher.add_task(TaskDraft(name="Exercise", points=50))
        notifications.dismiss_all()

        await dispatcher.toggle_task(task.id)
        await dispatcher.toggle_task(task.id)

        assert messages(notifications) == ["Earned 50 points!"]

    async def test_drag_end_reports_destination_name(self, dispatcher, notifications):
        task = await dispatcher.add_task(TaskDraft(name="Exercise", points=50))

        moved = await dispatcher.drag_end(DragEndEvent(dragged_task_id=str(task.id), destination_category_id="work"))

        assert moved is True
        assert notifications.current().message == "Task moved to Work"

    async def test_cancelled_drag_is_silent(self, dispatcher, notifications):
        task = await dispatcher.add_task(TaskDraft(name="Exercise", points=50))
        notifications.dismiss_all()

        assert await dispatcher.drag_end(DragEndEvent(dragged_task_id=task.id)) is False
        assert messages(notifications) == []

    async def test_persistence_failure_reported(self, dispatcher, notifications, store):
        store.fail_next_updates = 1

        result = await dispatcher.add_task(TaskDraft(name="Exercise", points=50))

        assert result is None
        assert notifications.current().message == "Failed to save your changes."


@pytest.mark.unit
class TestCategoryIntents:
    async def test_add_and_delete(self, dispatcher, notifications):
        category = await dispatcher.add_category("Errands")
        await dispatcher.delete_category(category.id)

        assert messages(notifications) == ["Category added successfully!", "Category deleted successfully!"]

    async def test_delete_category_in_use(self, dispatcher, notifications):
        await dispatcher.add_task(TaskDraft(name="Exercise", points=50, category="work"))

        await dispatcher.delete_category("work")

        assert notifications.current().message == "Cannot delete category with existing tasks."


@pytest.mark.unit
class TestShopIntents:
    async def test_shop_item_crud(self, dispatcher, notifications):
        item = await dispatcher.add_shop_item(ShopItemDraft(name="Ice Cream", price=80))
        await dispatcher.update_shop_item(item.id, ShopItemPatch(price=90))
        await dispatcher.delete_shop_item(item.id)

        assert messages(notifications) == [
            "Shop item added successfully!",
            "Item updated successfully!",
            "Shop item deleted successfully!",
        ]

    async def test_buy_sell_and_use(self, dispatcher, notifications, sessions, store):
        first = await dispatcher.buy_item(1)
        second = await dispatcher.buy_item(1)
        credited = await dispatcher.sell_item(first.unique_id)
        started = await dispatcher.use_item(second.unique_id)
        consumed = await dispatcher.use_item(second.unique_id)

        assert credited == 50
        assert started.consumed is False
        assert consumed.consumed is True
        assert messages(notifications) == [
            "Bought 1 Hour YouTube successfully!",
            "Bought 1 Hour YouTube successfully!",
            "Sold 1 Hour YouTube for 50 points",
            "Started using 1 Hour YouTube",
            "Removed 1 Hour YouTube from storage",
        ]
        assert sessions.reconciler.points == 500 - 100 - 100 + 50
        assert store.documents[USER_ID]["storageItems"] == []

    async def test_use_without_persist_skips_save(self, dispatcher, store):
        bought = await dispatcher.buy_item(1)
        updates_before = store.count("update")

        await dispatcher.use_item(bought.unique_id, persist=False)

        assert store.count("update") == updates_before

    async def test_insufficient_points(self, dispatcher, notifications):
        for _ in range(2):
            await dispatcher.buy_item(2)

        assert await dispatcher.buy_item(2) is None
        current = notifications.current()
        assert current.message == "Not enough points."
        assert "100 more points" in current.suggestion


@pytest.mark.unit
class TestSessionChanges:
    async def test_signed_out_intents_ask_for_login(self, dispatcher, notifications, auth):
        auth.sign_out()

        assert await dispatcher.add_task(TaskDraft(name="Exercise", points=5)) is None
        assert notifications.current().message == "You must be logged in to do that."

    async def test_points_listener_follows_new_session(self, dispatcher, notifications, auth, sessions):
        auth.sign_in("someone-else")
        await sessions.activate()
        task = await dispatcher.add_task(TaskDraft(name="Exercise", points=20))
        notifications.dismiss_all()

        await dispatcher.toggle_task(task.id)

        assert messages(notifications) == ["Earned 20 points!"]

    async def test_unexpected_error_is_reported(self, dispatcher, notifications):
        async def broken(_reconciler):
            raise RuntimeError("boom")

        assert await dispatcher.run("broken", broken) is None
        assert notifications.current().message == "An unexpected error occurred."
