"""Tracing and structured logging for taskquest.

Modules log through ``logging.getLogger(__name__)`` with context passed in
``extra``; Logfire picks those records up once ``configure_logfire`` has run.
Reconciler and repository operations are wrapped in ``span`` so a failed write
and the recovery that follows show up under one trace.

    logger.warning("Persisting state change failed", extra={"operation": "delete_task"})
    log_with_user_context(logger, "info", "Bought item", user_id=user_id, item_id=1)
"""

import logging

import logfire

from src.core.config import Settings, settings


def configure_logfire(app_settings: Settings | None = None) -> None:
    """Set up Logfire for the running client.

    Spans are always recorded locally; they are exported only when
    ``logfire_token`` is configured.
    """
    app_settings = app_settings or settings
    logfire.configure(
        token=app_settings.logfire_token,
        service_name="taskquest",
        service_version="0.1.0",
        send_to_logfire="if-token-present",
    )

    logger = logging.getLogger(__name__)
    logger.info("Logfire configured", extra={"export": app_settings.logfire_token is not None})


def span(name: str) -> logfire.LogfireSpan:
    """Open a Logfire span named after the operation, e.g. ``state_reconciler.buy_item``."""
    return logfire.span(name)


def log_with_context(
    logger: logging.Logger,
    level: str,
    message: str,
    **context: object,
) -> None:
    """Emit ``message`` at ``level`` with ``context`` attached as structured fields."""
    log_method = getattr(logger, level.lower())
    log_method(message, extra=context)


def log_with_user_context(
    logger: logging.Logger,
    level: str,
    message: str,
    user_id: str | None = None,
    **extra: object,
) -> None:
    """Like ``log_with_context``, tagging the record with the session owner.

    Args:
        logger: Logger instance to use
        level: Log level name ("debug", "info", "warning", "error")
        message: Log message
        user_id: Owner of the state being changed; omitted from the record when None
        **extra: Operation-specific fields such as task_id or item_id
    """
    context = {"user_id": user_id, **extra} if user_id else extra
    log_with_context(logger, level, message, **context)
