"""Shared fixtures: an in-memory store wired into the FastAPI app."""

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from fleetstats.main import app
from fleetstats.schemas.telemetry import TelemetryEvent
from fleetstats.store.base import EventStore, QueryError
from fleetstats.store.memory import MemoryEventStore

FIXED_NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


class FailingStore(EventStore):
    """Store whose every call fails with the given exception."""

    name = "failing"

    def __init__(self, exc: Exception):
        self.exc = exc
        self.writes = 0

    async def query_window(self, days):
        raise self.exc

    async def write(self, event: TelemetryEvent) -> None:
        self.writes += 1
        raise self.exc


@pytest.fixture
def memory_store():
    return MemoryEventStore(clock=lambda: FIXED_NOW)


@pytest.fixture
def client(memory_store):
    """Test client backed by an in-memory store (lifespan not started)."""
    app.state.store = memory_store
    return TestClient(app)


@pytest.fixture
def failing_store():
    return FailingStore(QueryError("Backend returned 502: upstream secret-token-xyz exploded"))
