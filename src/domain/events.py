"""Events pushed from the reconciler to the presentation layer."""

from pydantic import BaseModel


class PointsEarned(BaseModel):
    """A task was completed and its points were added to the balance."""

    task_id: int
    task_name: str
    points: int
    new_balance: int


class DragEndEvent(BaseModel):
    """Result of a drag-and-drop gesture on the task board.

    ``destination_category_id`` is None when the drag was cancelled or dropped
    outside any category column.
    """

    dragged_task_id: int | str
    source_category_id: str | None = None
    destination_category_id: str | None = None
