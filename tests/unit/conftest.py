"""Pytest configuration and fixtures for unit tests."""

from datetime import date

import pytest

from src.domain.create_models import TaskDraft
from src.services.state_reconciler import StateReconciler
from src.services.state_repository import StateRepository
from tests.unit.mocks import InMemoryDocumentStore


USER_ID = "user-123"
TODAY = date(2026, 3, 14)


@pytest.fixture
def store() -> InMemoryDocumentStore:
    """Provides a fresh InMemoryDocumentStore for each test."""
    return InMemoryDocumentStore()


@pytest.fixture
def repository(store: InMemoryDocumentStore) -> StateRepository:
    return StateRepository(store, timeout_seconds=0.5, default_points=500)


@pytest.fixture
async def reconciler(repository: StateRepository) -> StateReconciler:
    """Reconciler for USER_ID, already loaded with the seeded state (500 points)."""
    r = StateReconciler(repository, user_id=USER_ID, today=lambda: TODAY)
    await r.load()
    return r


@pytest.fixture
def signed_out_reconciler(repository: StateRepository) -> StateReconciler:
    return StateReconciler(repository, user_id=None)


@pytest.fixture
async def exercise_task(reconciler: StateReconciler):
    """A 50-point task in the 'general' category."""
    return await reconciler.add_task(TaskDraft(name="Exercise", points=50, category="general"))
