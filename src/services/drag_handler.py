"""Translate drag-and-drop results on the task board into category moves."""

import logging

from src.core.errors import NotFound
from src.core.logging import span
from src.domain.events import DragEndEvent
from src.services.state_reconciler import StateReconciler


logger = logging.getLogger(__name__)


def _parse_task_id(raw: int | str) -> int | None:
    """Draggable ids arrive as DOM strings; anything that is not an integer is ignored."""
    if isinstance(raw, int):
        return raw
    try:
        return int(raw.strip())
    except ValueError:
        return None


class DragReassignmentHandler:
    """Moves a dragged task into the column it was dropped on."""

    def __init__(self, reconciler: StateReconciler) -> None:
        self._reconciler = reconciler

    async def handle(self, event: DragEndEvent) -> bool:
        """Apply a drag result.

        Cancelled drags, drags without a signed-in user and tasks deleted while
        being dragged are ignored.

        Args:
            event: The completed drag gesture

        Returns:
            True if a move was saved, False if nothing changed

        Raises:
            PersistenceError: Saving the move failed (local state has been reloaded)
        """
        with span("drag_handler.handle"):
            if event.destination_category_id is None or not self._reconciler.is_active:
                return False

            task_id = _parse_task_id(event.dragged_task_id)
            if task_id is None:
                logger.warning("Ignoring drag with non-numeric task id", extra={"task_id": event.dragged_task_id})
                return False

            try:
                moved = await self._reconciler.move_task_to_category(task_id, event.destination_category_id)
            except NotFound:
                logger.info("Dragged task no longer exists", extra={"task_id": task_id})
                return False

            if moved is None:
                return False

            logger.info(
                "Moved task via drag",
                extra={
                    "task_id": task_id,
                    "from_category": event.source_category_id,
                    "to_category": event.destination_category_id,
                },
            )
            return True
