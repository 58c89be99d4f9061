from src.services import (
    drag_handler,
    notification_service,
    session_service,
    state_reconciler,
    state_repository,
)


__all__ = [
    "drag_handler",
    "notification_service",
    "session_service",
    "state_reconciler",
    "state_repository",
]
