"""Auth provider contract and the reconciler lifecycle that follows it."""

import logging
from collections.abc import Callable
from typing import Protocol

from src.core.config import UncompletePolicy
from src.domain.user_state import UserState
from src.services.state_reconciler import StateReconciler
from src.services.state_repository import StateRepository


logger = logging.getLogger(__name__)

AuthListener = Callable[[str | None], None]


class AuthProvider(Protocol):
    """Owns the signed-in identity; only an opaque user id (or None) leaks out."""

    @property
    def current_user_id(self) -> str | None: ...

    def add_listener(self, listener: AuthListener) -> Callable[[], None]:
        """Register ``listener`` for sign-in/sign-out. Returns an unsubscribe function."""
        ...


class InMemoryAuthProvider:
    """Auth provider driven directly by the embedding application (and tests)."""

    def __init__(self, user_id: str | None = None) -> None:
        self._user_id = user_id
        self._listeners: list[AuthListener] = []

    @property
    def current_user_id(self) -> str | None:
        return self._user_id

    def add_listener(self, listener: AuthListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def sign_in(self, user_id: str) -> None:
        if not user_id:
            msg = "user_id must be a non-empty string"
            raise ValueError(msg)
        self._set_user(user_id)

    def sign_out(self) -> None:
        self._set_user(None)

    def _set_user(self, user_id: str | None) -> None:
        if user_id == self._user_id:
            return
        self._user_id = user_id
        logger.info("Auth state changed", extra={"signed_in": user_id is not None})
        for listener in list(self._listeners):
            listener(user_id)


class SessionManager:
    """Keeps exactly one reconciler bound to whoever is signed in.

    Signing in swaps in a fresh, empty reconciler for the new user; call
    ``activate`` to load its state. Signing out tears the reconciler down so
    every further operation fails with ``NotAuthenticated``.
    """

    def __init__(
        self,
        auth: AuthProvider,
        repository: StateRepository,
        *,
        uncomplete_policy: UncompletePolicy = UncompletePolicy.KEEP_POINTS,
    ) -> None:
        self._repository = repository
        self._uncomplete_policy = uncomplete_policy
        self._reconciler = self._build(None)
        self._session_listeners: list[Callable[[StateReconciler], None]] = []
        self._unsubscribe_auth = auth.add_listener(self._on_auth_changed)
        if auth.current_user_id is not None:
            self._on_auth_changed(auth.current_user_id)

    def _build(self, user_id: str | None) -> StateReconciler:
        return StateReconciler(self._repository, user_id=user_id, uncomplete_policy=self._uncomplete_policy)

    @property
    def reconciler(self) -> StateReconciler:
        """Reconciler of the current session (inactive when nobody is signed in)."""
        return self._reconciler

    def add_session_listener(self, listener: Callable[[StateReconciler], None]) -> None:
        """Call ``listener`` with the new reconciler every time the session changes."""
        self._session_listeners.append(listener)

    def _on_auth_changed(self, user_id: str | None) -> None:
        if user_id == self._reconciler.user_id:
            return

        self._reconciler.close()
        self._reconciler = self._build(user_id)
        logger.info("Session replaced", extra={"user_id": user_id})

        for listener in list(self._session_listeners):
            listener(self._reconciler)

    async def activate(self) -> UserState | None:
        """Load the signed-in user's state. Returns None when nobody is signed in."""
        if not self._reconciler.is_active:
            return None
        return await self._reconciler.load()

    def shutdown(self) -> None:
        """Stop following the auth provider and tear down the current session."""
        self._unsubscribe_auth()
        self._reconciler.close()
