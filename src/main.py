"""taskquest - gamified personal task manager: earn points, spend them in the shop."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

import httpx

from src.core.config import DocumentStoreBackend, Settings, settings
from src.core.document_store import DocumentStore, create_document_store
from src.core.logging import configure_logfire
from src.interface.intent_dispatcher import IntentDispatcher
from src.services.notification_service import NotificationCenter
from src.services.session_service import AuthProvider, SessionManager
from src.services.state_repository import StateRepository


logger = logging.getLogger(__name__)


@dataclass
class Application:
    """Everything wired together for one running client."""

    settings: Settings
    store: DocumentStore
    repository: StateRepository
    sessions: SessionManager
    notifications: NotificationCenter
    dispatcher: IntentDispatcher


async def check_pocketbase_connectivity(app_settings: Settings) -> None:
    """Verify the PocketBase server answers its health endpoint.

    Raises:
        ConnectionError: If unable to reach PocketBase
    """
    try:
        async with httpx.AsyncClient(timeout=app_settings.store_timeout_seconds) as client:
            response = await client.get(f"{app_settings.pocketbase_url}/api/health")
            if response.is_success:
                logger.info("startup_validation", extra={"service": "pocketbase", "status": "ok"})
            else:
                raise ConnectionError(f"PocketBase returned status {response.status_code}")
    except httpx.HTTPError as e:
        logger.error("startup_validation", extra={"service": "pocketbase", "status": "failed", "error": str(e)})
        raise ConnectionError(f"PocketBase connectivity check failed: {e}") from e


@asynccontextmanager
async def run_application(
    auth: AuthProvider,
    *,
    app_settings: Settings | None = None,
    store: DocumentStore | None = None,
) -> AsyncIterator[Application]:
    """Build the store, repository and session manager; tear them down on exit.

    Args:
        auth: Provider of the signed-in user id
        app_settings: Settings to use, defaults to the environment
        store: Pre-built document store (tests); built from settings when omitted
    """
    app_settings = app_settings or settings
    configure_logfire(app_settings)

    if store is None:
        if app_settings.document_store_backend == DocumentStoreBackend.POCKETBASE:
            await check_pocketbase_connectivity(app_settings)
        store = create_document_store(app_settings)

    repository = StateRepository(
        store,
        timeout_seconds=app_settings.store_timeout_seconds,
        default_points=app_settings.default_points,
    )
    sessions = SessionManager(auth, repository, uncomplete_policy=app_settings.uncomplete_policy)
    notifications = NotificationCenter(ttl_seconds=app_settings.notification_ttl_seconds)
    dispatcher = IntentDispatcher(sessions, notifications)
    logger.info("Application started", extra={"backend": str(app_settings.document_store_backend)})

    try:
        yield Application(
            settings=app_settings,
            store=store,
            repository=repository,
            sessions=sessions,
            notifications=notifications,
            dispatcher=dispatcher,
        )
    finally:
        sessions.shutdown()
        await store.close()
        logger.info("Application stopped")
