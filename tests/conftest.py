"""Pytest configuration and fixtures for test suite."""

import pytest

from core.event_hub import event_hub
from core.liveness_tracker import LivenessTracker, liveness_tracker
from core.services.incident_store import InMemoryIncidentStore
from core.services.ingestion_router import IngestionRouter, ingestion_router


@pytest.fixture(autouse=True)
def reset_global_state():
    """Give every test an empty tracker, an empty in-memory store and no live subscribers."""
    original_store = ingestion_router.store
    ingestion_router.store = InMemoryIncidentStore()
    liveness_tracker.clear()
    event_hub.unsubscribe_all()

    yield

    liveness_tracker.clear()
    event_hub.unsubscribe_all()
    ingestion_router.store = original_store


@pytest.fixture
def tracker() -> LivenessTracker:
    return LivenessTracker(sweep_interval=0.01, lock_timeout=0.05)


@pytest.fixture
def store() -> InMemoryIncidentStore:
    return InMemoryIncidentStore()


@pytest.fixture
def router(store, tracker) -> IngestionRouter:
    return IngestionRouter(store, tracker, storage_timeout=0.2, device_id_prefix="ESP32")
