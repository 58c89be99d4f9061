"""Unit tests for what local state looks like after a failed write."""

import asyncio

import pytest

from src.core.errors import PersistenceError
from src.domain.create_models import ShopItemDraft, TaskDraft
from src.domain.task import Task
from src.domain.update_models import ShopItemPatch, TaskPatch
from src.services.state_reconciler import StateReconciler
from src.services.state_repository import StateRepository
from tests.unit.conftest import TODAY, USER_ID


@pytest.mark.unit
class TestKeepPolicy:
    """Operations that leave the optimistic change in place."""

    async def test_add_task_keeps_new_task(self, reconciler, store):
        store.fail_next_updates = 1

        with pytest.raises(PersistenceError):
            await reconciler.add_task(TaskDraft(name="Exercise", points=50))

        assert [t.name for t in reconciler.snapshot().tasks] == ["Exercise"]
        assert store.documents[USER_ID]["tasks"] == []

    async def test_add_category_keeps_new_category(self, reconciler, store):
        store.fail_next_updates = 1

        with pytest.raises(PersistenceError):
            await reconciler.add_category("Errands")

        assert reconciler.snapshot().categories[-1].id == "errands"
        assert len(store.documents[USER_ID]["categories"]) == 3

    async def test_buy_item_keeps_purchase(self, reconciler, store):
        store.fail_next_updates = 1

        with pytest.raises(PersistenceError):
            await reconciler.buy_item(1)

        assert reconciler.points == 400
        assert len(reconciler.snapshot().storage_items) == 1
        assert store.documents[USER_ID]["points"] == 500

    async def test_sell_item_keeps_sale(self, reconciler, store):
        bought = await reconciler.buy_item(1)
        store.fail_next_updates = 1

        with pytest.raises(PersistenceError):
            await reconciler.sell_item(bought.unique_id)

        assert reconciler.points == 450
        assert reconciler.snapshot().storage_items == []
        assert store.documents[USER_ID]["points"] == 400

    async def test_save_storage_keeps_local_list(self, reconciler, store):
        bought = await reconciler.buy_item(1)
        await reconciler.toggle_item_use(bought.unique_id)
        store.fail_next_updates = 1

        with pytest.raises(PersistenceError):
            await reconciler.save_storage()

        assert reconciler.snapshot().storage_items[0].in_use is True
        assert store.documents[USER_ID]["storageItems"][0]["inUse"] is False


@pytest.mark.unit
class TestRollbackPolicy:
    """Operations that restore the pre-change snapshot."""

    async def test_update_task_rolls_back(self, reconciler, exercise_task, store):
        store.fail_next_updates = 1

        with pytest.raises(PersistenceError):
            await reconciler.update_task(exercise_task.id, TaskPatch(name="Run", points=5))

        task = reconciler.snapshot().tasks[0]
        assert task.name == "Exercise"
        assert task.points == 50

    async def test_save_tasks_rolls_back(self, reconciler, exercise_task, store):
        store.fail_next_updates = 1

        with pytest.raises(PersistenceError):
            await reconciler.save_tasks([Task(id=1, name="Other", points=1)])

        assert [t.id for t in reconciler.snapshot().tasks] == [exercise_task.id]

    async def test_add_shop_item_rolls_back(self, reconciler, store):
        store.fail_next_updates = 1

        with pytest.raises(PersistenceError):
            await reconciler.add_shop_item(ShopItemDraft(name="Ice Cream", price=80))

        assert [i.name for i in reconciler.snapshot().shop_items] == ["1 Hour YouTube", "2 Hour Movie"]


@pytest.mark.unit
class TestReloadPolicy:
    """Operations that re-read the affected fields from the store."""

    async def test_delete_task_reloads_tasks(self, reconciler, exercise_task, store):
        store.fail_next_updates = 1

        with pytest.raises(PersistenceError):
            await reconciler.delete_task(exercise_task.id)

        assert [t.id for t in reconciler.snapshot().tasks] == [exercise_task.id]

    async def test_reload_picks_up_remote_changes(self, reconciler, exercise_task, store):
        store.documents[USER_ID]["categories"].append({"id": "errands", "name": "Errands"})
        store.fail_next_updates = 1

        with pytest.raises(PersistenceError):
            await reconciler.move_task_to_category(exercise_task.id, "work")

        state = reconciler.snapshot()
        assert state.tasks[0].category == "general"
        assert "errands" in [c.id for c in state.categories]

    async def test_toggle_reloads_points(self, reconciler, exercise_task, store):
        events = []
        reconciler.on_points_earned(events.append)
        store.fail_next_updates = 1

        with pytest.raises(PersistenceError):
            await reconciler.toggle_task_completion(exercise_task.id)

        assert reconciler.points == 500
        assert reconciler.snapshot().tasks[0].completed is False
        assert events == []

    async def test_delete_category_reloads_categories(self, reconciler, store):
        store.fail_next_updates = 1

        with pytest.raises(PersistenceError):
            await reconciler.delete_category("work")

        assert [c.id for c in reconciler.snapshot().categories] == ["general", "work", "personal"]

    async def test_update_shop_item_reloads_shop(self, reconciler, store):
        store.fail_next_updates = 1

        with pytest.raises(PersistenceError):
            await reconciler.update_shop_item(1, ShopItemPatch(price=999))

        assert reconciler.snapshot().shop_items[0].price == 100

    async def test_delete_shop_item_reloads_shop(self, reconciler, store):
        store.fail_next_updates = 1

        with pytest.raises(PersistenceError):
            await reconciler.delete_shop_item(2)

        assert [i.id for i in reconciler.snapshot().shop_items] == [1, 2]

    async def test_reload_only_touches_named_fields(self, reconciler, exercise_task, store):
        bought = await reconciler.buy_item(1)
        await reconciler.toggle_item_use(bought.unique_id)
        store.fail_next_updates = 1

        with pytest.raises(PersistenceError):
            await reconciler.delete_task(exercise_task.id)

        assert reconciler.snapshot().storage_items[0].in_use is True

    async def test_failed_reload_restores_snapshot(self, reconciler, exercise_task, store):
        store.fail_next_updates = 1
        store.fail_next_gets = 1

        with pytest.raises(PersistenceError):
            await reconciler.delete_task(exercise_task.id)

        assert [t.id for t in reconciler.snapshot().tasks] == [exercise_task.id]


@pytest.mark.unit
class TestTimeoutsAndNotifications:
    """Slow stores and listener behaviour during recovery."""

    async def test_timeout_is_a_persistence_failure(self, store):
        repository = StateRepository(store, timeout_seconds=0.05, default_points=500)
        r = StateReconciler(repository, user_id=USER_ID, today=lambda: TODAY)
        await r.load()
        store.update_delay_seconds = 1.0

        with pytest.raises(PersistenceError, match="timed out"):
            await r.add_category("Errands")

        assert r.snapshot().categories[-1].id == "errands"

    async def test_subscribers_see_recovered_state(self, reconciler, exercise_task, store):
        seen = []
        reconciler.subscribe(seen.append)
        store.fail_next_updates = 1

        with pytest.raises(PersistenceError):
            await reconciler.update_task(exercise_task.id, TaskPatch(name="Run"))

        assert len(seen) == 1
        assert seen[0].tasks[0].name == "Exercise"

    async def test_next_operation_works_after_failure(self, reconciler, store):
        store.fail_next_updates = 1
        with pytest.raises(PersistenceError):
            await reconciler.add_task(TaskDraft(name="Exercise", points=50))

        await reconciler.add_task(TaskDraft(name="Read", points=5))

        assert [t["name"] for t in store.documents[USER_ID]["tasks"]] == ["Exercise", "Read"]


@pytest.mark.unit
class TestSessionClosedDuringWrite:
    """A session torn down while a write is in flight still reports the write failure."""

    async def _close_mid_write(self, reconciler, store, operation):
        store.update_delay_seconds = 0.05
        store.fail_next_updates = 1
        pending = asyncio.create_task(operation())
        await asyncio.sleep(0.01)

        reconciler.close()

        with pytest.raises(PersistenceError):
            await pending

    async def test_reload_policy_raises_persistence_error(self, reconciler, exercise_task, store):
        await self._close_mid_write(reconciler, store, lambda: reconciler.delete_task(exercise_task.id))

        assert reconciler.snapshot().tasks == []
        assert store.count("get") == 1

    async def test_rollback_does_not_restore_old_session_state(self, reconciler, exercise_task, store):
        await self._close_mid_write(
            reconciler, store, lambda: reconciler.update_task(exercise_task.id, TaskPatch(name="Run"))
        )

        assert reconciler.is_active is False
        assert reconciler.snapshot().tasks == []
        assert reconciler.points == 0
