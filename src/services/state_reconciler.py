"""In-memory user state with optimistic writes and per-operation failure recovery.

Every mutation follows the same path: validate against the current snapshot,
apply the change to a copy, make the copy current, persist the touched fields,
and if persisting fails recover according to the operation's ``FailurePolicy``.

Recovery per operation:

==========================  =========================  ===========================
operation                   persisted fields           on PersistenceError
==========================  =========================  ===========================
add_task                    tasks                      KEEP
update_task                 tasks                      ROLLBACK
save_tasks                  tasks                      ROLLBACK
delete_task                 tasks                      RELOAD tasks, categories
toggle_task_completion      tasks, points              RELOAD tasks, categories, points
move_task_to_category       tasks                      RELOAD tasks, categories
add_category                categories                 KEEP
delete_category             categories                 RELOAD categories
add_shop_item               shopItems                  ROLLBACK
update_shop_item            shopItems                  RELOAD shopItems
delete_shop_item            shopItems                  RELOAD shopItems
buy_item                    points, storageItems       KEEP
sell_item                   points, storageItems       KEEP
save_storage                storageItems               KEEP
toggle_item_use             (local only)               n/a
==========================  =========================  ===========================
"""

import asyncio
import logging
import math
from collections.abc import Callable, Sequence
from datetime import date
from enum import StrEnum
from typing import NamedTuple, TypeVar

from src.core.config import Constants, UncompletePolicy
from src.core.errors import (
    CategoryInUse,
    DuplicateName,
    InsufficientPoints,
    InvalidInput,
    NotAuthenticated,
    NotFound,
    PersistenceError,
)
from src.core.id_generator import MonotonicIdGenerator, new_storage_unique_id
from src.core.logging import log_with_user_context, span
from src.domain.category import Category, category_slug
from src.domain.create_models import ShopItemDraft, TaskDraft
from src.domain.events import PointsEarned
from src.domain.shop import ShopItem, StorageItem
from src.domain.task import Task, TaskUseType
from src.domain.update_models import ShopItemPatch, TaskPatch
from src.domain.user_state import UserState
from src.services.state_repository import StateRepository


logger = logging.getLogger(__name__)

T = TypeVar("T")

StateListener = Callable[[UserState], None]
PointsListener = Callable[[PointsEarned], None]

# Document field name -> UserState attribute
_FIELD_ATTRS = {
    "points": "points",
    "tasks": "tasks",
    "categories": "categories",
    "shopItems": "shop_items",
    "storageItems": "storage_items",
}

# Patch fields that may be explicitly cleared with None
_NULLABLE_TASK_FIELDS = {"frequency"}


class FailurePolicy(StrEnum):
    """How local state is recovered when persisting a mutation fails."""

    KEEP = "keep"  # Leave the optimistic change in place
    ROLLBACK = "rollback"  # Restore the snapshot taken before the change
    RELOAD = "reload"  # Re-read the affected fields from the store


class ItemUseResult(NamedTuple):
    """Outcome of toggling a storage item's use."""

    item: StorageItem
    consumed: bool


def _same_name(a: str, b: str) -> bool:
    return a.strip().lower() == b.strip().lower()


class StateReconciler:
    """Owns one user's in-memory ``UserState`` for the lifetime of a session.

    Operations are serialized with an asyncio lock: an intent issued while
    another is awaiting the store waits for it instead of interleaving.
    Validation errors are raised before anything changes. ``PersistenceError``
    is raised after recovery has run, so the caller always sees settled state.
    """

    def __init__(
        self,
        repository: StateRepository,
        *,
        user_id: str | None,
        uncomplete_policy: UncompletePolicy = UncompletePolicy.KEEP_POINTS,
        id_generator: MonotonicIdGenerator | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._repository = repository
        self._user_id = user_id
        self._uncomplete_policy = uncomplete_policy
        self._ids = id_generator or MonotonicIdGenerator()
        self._today = today
        self._state = UserState()
        self._lock = asyncio.Lock()
        self._listeners: list[StateListener] = []
        self._points_listeners: list[PointsListener] = []

    # ------------------------------------------------------------------
    # Session, snapshot and subscriptions
    # ------------------------------------------------------------------

    @property
    def user_id(self) -> str | None:
        """Owner of the state, None once the session is torn down."""
        return self._user_id

    @property
    def is_active(self) -> bool:
        return self._user_id is not None

    @property
    def points(self) -> int:
        return self._state.points

    def snapshot(self) -> UserState:
        """Deep copy of the current state."""
        return self._state.model_copy(deep=True)

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Call ``listener`` with a snapshot after every commit or recovery. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def on_points_earned(self, listener: PointsListener) -> Callable[[], None]:
        """Call ``listener`` whenever completing a task earns points. Returns an unsubscribe function."""
        self._points_listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._points_listeners:
                self._points_listeners.remove(listener)

        return unsubscribe

    def close(self) -> None:
        """Tear down the session: forget the user, the state and all listeners."""
        log_with_user_context(logger, "info", "Closing reconciler session", user_id=self._user_id)
        self._user_id = None
        self._state = UserState()
        self._listeners.clear()
        self._points_listeners.clear()

    def _require_user(self) -> str:
        if self._user_id is None:
            raise NotAuthenticated("You must be logged in to change your tasks, shop or storage")
        return self._user_id

    def _publish(self) -> None:
        if not self._listeners:
            return
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            listener(snapshot)

    def _emit_points_earned(self, event: PointsEarned) -> None:
        for listener in list(self._points_listeners):
            listener(event)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load(self) -> UserState:
        """Load (or initialize) the user's document and make it the local state."""
        user_id = self._require_user()
        async with self._lock:
            with span("state_reconciler.load"):
                self._state = await self._repository.load_state(user_id)
                log_with_user_context(
                    logger,
                    "info",
                    "Loaded user state",
                    user_id=user_id,
                    tasks=len(self._state.tasks),
                    points=self._state.points,
                )
                self._publish()
                return self.snapshot()

    async def reload(self, fields: Sequence[str] = ("tasks", "categories")) -> UserState:
        """Replace the named top-level fields with the stored copy."""
        user_id = self._require_user()
        async with self._lock:
            await self._reload_fields(user_id, fields)
            self._publish()
            return self.snapshot()

    async def _reload_fields(self, user_id: str, fields: Sequence[str]) -> None:
        fresh = await self._repository.fetch_fields(user_id, fields)
        if self._user_id != user_id:
            return
        updates = {_FIELD_ATTRS[name]: getattr(fresh, _FIELD_ATTRS[name]) for name in fields}
        self._state = self._state.model_copy(update=updates)
        log_with_user_context(logger, "info", "Reloaded state fields", user_id=user_id, fields=list(fields))

    # ------------------------------------------------------------------
    # Optimistic apply / persist / recover
    # ------------------------------------------------------------------

    async def _apply_and_persist(
        self,
        operation: str,
        mutate: Callable[[UserState], T],
        *,
        fields: Sequence[str],
        policy: FailurePolicy,
        reload_fields: Sequence[str] = (),
    ) -> T:
        """Apply ``mutate`` to a copy of the state, make it current, then persist ``fields``.

        Must be called with the lock held.
        """
        user_id = self._require_user()
        previous = self._state
        candidate = previous.model_copy(deep=True)
        result = mutate(candidate)
        self._state = candidate

        try:
            payload = StateRepository.encode_fields(candidate, fields)
            await self._repository.save_fields(user_id, **payload)
        except PersistenceError as e:
            log_with_user_context(
                logger,
                "warning",
                "Persisting state change failed",
                user_id=user_id,
                operation=operation,
                policy=str(policy),
                error=str(e),
            )
            await self._recover(user_id, previous, policy, reload_fields)
            raise

        self._publish()
        return result

    async def _recover(
        self, user_id: str, previous: UserState, policy: FailurePolicy, reload_fields: Sequence[str]
    ) -> None:
        if self._user_id != user_id:
            logger.info("Session ended during write, skipping recovery", extra={"user_id": user_id})
            return

        if policy == FailurePolicy.ROLLBACK:
            self._state = previous
        elif policy == FailurePolicy.RELOAD:
            try:
                await self._reload_fields(user_id, reload_fields)
            except PersistenceError as e:
                logger.error("Reload after failed write also failed, restoring snapshot", extra={"error": str(e)})
                if self._user_id == user_id:
                    self._state = previous
        self._publish()

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def _find_task(self, task_id: int) -> Task:
        for task in self._state.tasks:
            if task.id == task_id:
                return task
        raise NotFound("task", task_id)

    def tasks_in_category(self, category_id: str) -> list[Task]:
        return [t.model_copy() for t in self._state.tasks if t.category == category_id]

    async def add_task(self, draft: TaskDraft) -> Task:
        """Create a task with a fresh id.

        Raises:
            InvalidInput: Name empty or points not positive
            DuplicateName: A task with the same name (ignoring case) exists
            PersistenceError: Saving failed; the new task stays in local state
        """
        self._require_user()
        async with self._lock:
            with span("state_reconciler.add_task"):
                name = draft.name.strip()
                if not name or draft.points <= 0:
                    raise InvalidInput("Please enter a valid task name and points")
                if any(_same_name(t.name, name) for t in self._state.tasks):
                    raise DuplicateName("task", name)

                task = Task(
                    id=self._ids.next_id(t.id for t in self._state.tasks),
                    name=name,
                    points=draft.points,
                    category=draft.category or Constants.DEFAULT_CATEGORY_ID,
                    use_type=draft.use_type or TaskUseType.UNLIMITED,
                    frequency=draft.frequency,
                    completed=False,
                )

                def mutate(state: UserState) -> Task:
                    state.tasks.append(task)
                    return task.model_copy()

                created = await self._apply_and_persist(
                    "add_task", mutate, fields=("tasks",), policy=FailurePolicy.KEEP
                )
                log_with_user_context(logger, "info", "Added task", user_id=self._user_id, task_id=task.id)
                return created

    async def update_task(self, task_id: int, patch: TaskPatch) -> Task:
        """Edit a task in place. Name uniqueness is not re-checked on edit.

        Raises:
            NotFound: No task has ``task_id``
            InvalidInput: Resulting name empty or points negative
            PersistenceError: Saving failed; the edit is rolled back
        """
        self._require_user()
        async with self._lock:
            with span("state_reconciler.update_task"):
                current = self._find_task(task_id)
                changes = {
                    key: value
                    for key, value in patch.model_dump(exclude_unset=True).items()
                    if value is not None or key in _NULLABLE_TASK_FIELDS
                }
                if "name" in changes:
                    changes["name"] = changes["name"].strip()
                updated = current.model_copy(update=changes)
                if not updated.name or updated.points < 0:
                    raise InvalidInput("Please enter a valid task name and points")

                def mutate(state: UserState) -> Task:
                    state.tasks = [updated if t.id == task_id else t for t in state.tasks]
                    return updated.model_copy()

                return await self._apply_and_persist(
                    "update_task", mutate, fields=("tasks",), policy=FailurePolicy.ROLLBACK
                )

    async def save_tasks(self, tasks: Sequence[Task]) -> list[Task]:
        """Replace the whole task list (bulk reorder/import). Rolled back if saving fails.

        Raises:
            InvalidInput: Duplicate ids, a blank name or negative points in ``tasks``
            PersistenceError: Saving failed; the previous list is restored
        """
        self._require_user()
        async with self._lock:
            with span("state_reconciler.save_tasks"):
                replacement = [t.model_copy() for t in tasks]
                ids = [t.id for t in replacement]
                if len(set(ids)) != len(ids):
                    raise InvalidInput("Task ids must be unique")
                if any(not t.name.strip() or t.points < 0 for t in replacement):
                    raise InvalidInput("Please enter a valid task name and points")

                def mutate(state: UserState) -> list[Task]:
                    state.tasks = replacement
                    return [t.model_copy() for t in replacement]

                return await self._apply_and_persist(
                    "save_tasks", mutate, fields=("tasks",), policy=FailurePolicy.ROLLBACK
                )

    async def delete_task(self, task_id: int) -> None:
        """Remove a task; an unknown id removes nothing but still saves.

        Raises:
            PersistenceError: Saving failed; tasks and categories are reloaded from the store
        """
        self._require_user()
        async with self._lock:
            with span("state_reconciler.delete_task"):

                def mutate(state: UserState) -> None:
                    state.tasks = [t for t in state.tasks if t.id != task_id]

                await self._apply_and_persist(
                    "delete_task",
                    mutate,
                    fields=("tasks",),
                    policy=FailurePolicy.RELOAD,
                    reload_fields=("tasks", "categories"),
                )
                log_with_user_context(logger, "info", "Deleted task", user_id=self._user_id, task_id=task_id)

    async def toggle_task_completion(self, task_id: int) -> Task:
        """Flip a task's completed flag.

        Completing adds the task's points and notifies points listeners once the
        change is saved. Un-completing keeps the points unless the reconciler was
        built with ``UncompletePolicy.REVOKE_POINTS``, which subtracts them (never
        below zero).

        Raises:
            NotFound: No task has ``task_id``
            PersistenceError: Saving failed; tasks, categories and points are reloaded
        """
        self._require_user()
        async with self._lock:
            with span("state_reconciler.toggle_task_completion"):
                task = self._find_task(task_id)
                completing = not task.completed

                def mutate(state: UserState) -> Task:
                    toggled = task.model_copy(update={"completed": completing})
                    state.tasks = [toggled if t.id == task_id else t for t in state.tasks]
                    if completing:
                        state.points += task.points
                    elif self._uncomplete_policy == UncompletePolicy.REVOKE_POINTS:
                        state.points = max(0, state.points - task.points)
                    return toggled.model_copy()

                toggled = await self._apply_and_persist(
                    "toggle_task_completion",
                    mutate,
                    fields=("tasks", "points"),
                    policy=FailurePolicy.RELOAD,
                    reload_fields=("tasks", "categories", "points"),
                )

                if completing:
                    log_with_user_context(
                        logger, "info", "Task completed", user_id=self._user_id, task_id=task_id, points=task.points
                    )
                    self._emit_points_earned(
                        PointsEarned(
                            task_id=task.id,
                            task_name=task.name,
                            points=task.points,
                            new_balance=self._state.points,
                        )
                    )
                return toggled

    async def move_task_to_category(self, task_id: int, category_id: str) -> Task | None:
        """Reassign a task to another category.

        Returns None without touching the store when the category does not exist
        or the task is already in it.

        Raises:
            NotFound: No task has ``task_id``
            PersistenceError: Saving failed; tasks and categories are reloaded
        """
        self._require_user()
        async with self._lock:
            with span("state_reconciler.move_task_to_category"):
                if not any(c.id == category_id for c in self._state.categories):
                    logger.info("Ignoring move to unknown category", extra={"category_id": category_id})
                    return None

                task = self._find_task(task_id)
                if task.category == category_id:
                    return None

                def mutate(state: UserState) -> Task:
                    moved = task.model_copy(update={"category": category_id})
                    state.tasks = [moved if t.id == task_id else t for t in state.tasks]
                    return moved.model_copy()

                return await self._apply_and_persist(
                    "move_task_to_category",
                    mutate,
                    fields=("tasks",),
                    policy=FailurePolicy.RELOAD,
                    reload_fields=("tasks", "categories"),
                )

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    async def add_category(self, name: str) -> Category:
        """Add a category whose id is the slug of its name.

        Raises:
            InvalidInput: Name blank
            DuplicateName: Name or derived id already used (ignoring case)
            PersistenceError: Saving failed; the category stays in local state
        """
        self._require_user()
        async with self._lock:
            with span("state_reconciler.add_category"):
                display_name = name.strip()
                if not display_name:
                    raise InvalidInput("Category name cannot be empty")

                slug = category_slug(display_name)
                if any(_same_name(c.name, display_name) or c.id.lower() == slug for c in self._state.categories):
                    raise DuplicateName("category", display_name)

                category = Category(id=slug, name=display_name)

                def mutate(state: UserState) -> Category:
                    state.categories.append(category)
                    return category.model_copy()

                return await self._apply_and_persist(
                    "add_category", mutate, fields=("categories",), policy=FailurePolicy.KEEP
                )

    async def delete_category(self, category_id: str) -> None:
        """Remove a category that no task references.

        Raises:
            CategoryInUse: At least one task is in the category
            PersistenceError: Saving failed; categories are reloaded
        """
        self._require_user()
        async with self._lock:
            with span("state_reconciler.delete_category"):
                in_use = sum(1 for t in self._state.tasks if t.category == category_id)
                if in_use:
                    raise CategoryInUse(category_id, in_use)

                def mutate(state: UserState) -> None:
                    state.categories = [c for c in state.categories if c.id != category_id]

                await self._apply_and_persist(
                    "delete_category",
                    mutate,
                    fields=("categories",),
                    policy=FailurePolicy.RELOAD,
                    reload_fields=("categories",),
                )

    # ------------------------------------------------------------------
    # Shop
    # ------------------------------------------------------------------

    def _find_shop_item(self, item_id: int) -> ShopItem:
        for item in self._state.shop_items:
            if item.id == item_id:
                return item
        raise NotFound("shop item", item_id)

    async def add_shop_item(self, draft: ShopItemDraft) -> ShopItem:
        """Add a reward to the shop.

        Raises:
            InvalidInput: Name empty or price not positive
            DuplicateName: A shop item with the same name (ignoring case) exists
            PersistenceError: Saving failed; the item is rolled back
        """
        self._require_user()
        async with self._lock:
            with span("state_reconciler.add_shop_item"):
                name = draft.name.strip()
                if not name or draft.price <= 0:
                    raise InvalidInput("Please enter a valid item name and price")
                if any(_same_name(i.name, name) for i in self._state.shop_items):
                    raise DuplicateName("shop item", name)

                item = ShopItem(
                    id=self._ids.next_id(i.id for i in self._state.shop_items),
                    name=name,
                    price=draft.price,
                    description=draft.description,
                    category=draft.category or Constants.DEFAULT_SHOP_CATEGORY,
                )

                def mutate(state: UserState) -> ShopItem:
                    state.shop_items.append(item)
                    return item.model_copy()

                return await self._apply_and_persist(
                    "add_shop_item", mutate, fields=("shopItems",), policy=FailurePolicy.ROLLBACK
                )

    async def update_shop_item(self, item_id: int, patch: ShopItemPatch) -> ShopItem:
        """Edit a shop item. Already purchased storage items keep their old copy.

        Raises:
            NotFound: No shop item has ``item_id``
            InvalidInput: Resulting name empty or price not positive
            PersistenceError: Saving failed; shop items are reloaded
        """
        self._require_user()
        async with self._lock:
            with span("state_reconciler.update_shop_item"):
                current = self._find_shop_item(item_id)
                changes = {k: v for k, v in patch.model_dump(exclude_unset=True).items() if v is not None}
                if "name" in changes:
                    changes["name"] = changes["name"].strip()
                updated = current.model_copy(update=changes)
                if not updated.name or updated.price <= 0:
                    raise InvalidInput("Please enter a valid item name and price")

                def mutate(state: UserState) -> ShopItem:
                    state.shop_items = [updated if i.id == item_id else i for i in state.shop_items]
                    return updated.model_copy()

                return await self._apply_and_persist(
                    "update_shop_item",
                    mutate,
                    fields=("shopItems",),
                    policy=FailurePolicy.RELOAD,
                    reload_fields=("shopItems",),
                )

    async def delete_shop_item(self, item_id: int) -> None:
        """Remove an item from the shop; purchased instances in storage are untouched.

        Raises:
            PersistenceError: Saving failed; shop items are reloaded
        """
        self._require_user()
        async with self._lock:
            with span("state_reconciler.delete_shop_item"):

                def mutate(state: UserState) -> None:
                    state.shop_items = [i for i in state.shop_items if i.id != item_id]

                await self._apply_and_persist(
                    "delete_shop_item",
                    mutate,
                    fields=("shopItems",),
                    policy=FailurePolicy.RELOAD,
                    reload_fields=("shopItems",),
                )

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    def _find_storage_item(self, unique_id: str) -> StorageItem:
        for item in self._state.storage_items:
            if item.unique_id == unique_id:
                return item
        raise NotFound("storage item", unique_id)

    def storage_counts(self) -> dict[int, int]:
        """Number of held instances per shop item id."""
        counts: dict[int, int] = {}
        for item in self._state.storage_items:
            counts[item.id] = counts.get(item.id, 0) + 1
        return counts

    async def buy_item(self, item_id: int) -> StorageItem:
        """Spend points on a shop item and put a new instance into storage.

        Raises:
            NotFound: No shop item has ``item_id``
            InsufficientPoints: Balance below the price
            PersistenceError: Saving failed; the purchase stays in local state
        """
        self._require_user()
        async with self._lock:
            with span("state_reconciler.buy_item"):
                item = self._find_shop_item(item_id)
                if self._state.points < item.price:
                    raise InsufficientPoints(self._state.points, item.price)

                bought = StorageItem(
                    **item.model_dump(),
                    unique_id=new_storage_unique_id(),
                    date_acquired=self._today().isoformat(),
                    in_use=False,
                )

                def mutate(state: UserState) -> StorageItem:
                    state.points -= item.price
                    state.storage_items.append(bought)
                    return bought.model_copy()

                result = await self._apply_and_persist(
                    "buy_item", mutate, fields=("points", "storageItems"), policy=FailurePolicy.KEEP
                )
                log_with_user_context(
                    logger, "info", "Bought item", user_id=self._user_id, item_id=item_id, unique_id=bought.unique_id
                )
                return result

    async def sell_item(self, unique_id: str) -> int:
        """Sell one storage instance back for half its price (rounded down).

        Returns:
            The number of points credited

        Raises:
            NotFound: No storage instance has ``unique_id``
            PersistenceError: Saving failed; the sale stays in local state
        """
        self._require_user()
        async with self._lock:
            with span("state_reconciler.sell_item"):
                item = self._find_storage_item(unique_id)
                sell_price = math.floor(item.price * Constants.SELL_RATIO)

                def mutate(state: UserState) -> int:
                    state.points += sell_price
                    state.storage_items = [i for i in state.storage_items if i.unique_id != unique_id]
                    return sell_price

                return await self._apply_and_persist(
                    "sell_item", mutate, fields=("points", "storageItems"), policy=FailurePolicy.KEEP
                )

    async def toggle_item_use(self, unique_id: str) -> ItemUseResult:
        """Start using a storage instance, or consume it if it is already in use.

        Local only: nothing is written. Call ``save_storage`` to persist.

        Raises:
            NotFound: No storage instance has ``unique_id``
        """
        self._require_user()
        async with self._lock:
            item = self._find_storage_item(unique_id)
            if item.in_use:
                self._state.storage_items = [i for i in self._state.storage_items if i.unique_id != unique_id]
                result = ItemUseResult(item=item.model_copy(), consumed=True)
            else:
                started = item.model_copy(update={"in_use": True})
                self._state.storage_items = [
                    started if i.unique_id == unique_id else i for i in self._state.storage_items
                ]
                result = ItemUseResult(item=started.model_copy(), consumed=False)
            self._publish()
            return result

    async def save_storage(self) -> None:
        """Persist the local storage list, e.g. after ``toggle_item_use``."""
        self._require_user()
        async with self._lock:
            with span("state_reconciler.save_storage"):
                await self._apply_and_persist(
                    "save_storage", lambda _state: None, fields=("storageItems",), policy=FailurePolicy.KEEP
                )
