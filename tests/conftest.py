"""Shared test fixtures for the AURIX voice agent."""
from __future__ import annotations

from typing import Any

import pytest

from aurix.config import get_settings
from aurix.core.lifecycle import get_lifecycle_registry
from aurix.db.db import connect_db, disconnect_db
from aurix.models.schemas import CallEvent
from aurix.state import session_store
from aurix.state.event_stream import get_event_stream
from aurix.storage.records_store import seed_demo_data


@pytest.fixture(autouse=True)
def fast_settings(monkeypatch: pytest.MonkeyPatch, tmp_path) -> Any:
    """No pacing, stub collaborators and a throwaway database for every test."""
    settings = get_settings()
    monkeypatch.setattr(settings, "DB_URL", f"sqlite:///{tmp_path / 'aurix-test.db'}")
    monkeypatch.setattr(settings, "REDIS_URL", None)
    monkeypatch.setattr(settings, "WORKFLOW_STEP_DELAY", 0.0)
    monkeypatch.setattr(settings, "SIMULATION_PACE", 0.0)
    monkeypatch.setattr(settings, "LLM_MODE", "stub")
    monkeypatch.setattr(settings, "LLM_API_KEY", None)
    monkeypatch.setattr(settings, "TWILIO_ACCOUNT_SID", None)
    monkeypatch.setattr(settings, "TWILIO_AUTH_TOKEN", None)
    monkeypatch.setattr(settings, "TWILIO_PHONE_NUMBER", None)
    monkeypatch.setattr(settings, "ELEVENLABS_AGENT_ID", None)
    monkeypatch.setattr(settings, "ENV", "dev")
    monkeypatch.setattr(settings, "WEBHOOK_SECRET", "test-secret")
    monkeypatch.setattr(settings, "SEED_DEMO_DATA", True)
    yield settings
    get_event_stream().clear()
    session_store.clear_memory()


@pytest.fixture
async def db(fast_settings) -> Any:
    """Connected, seeded database on a temporary SQLite file."""
    database = await connect_db(fast_settings.DB_URL)
    await seed_demo_data()
    yield database
    await get_lifecycle_registry().shutdown()
    await disconnect_db()


@pytest.fixture
def client(fast_settings) -> Any:
    """TestClient running the app's startup/shutdown against the temporary database."""
    from fastapi.testclient import TestClient

    from aurix.main import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def make_event() -> Any:
    """Factory for stored events that never touch the database."""

    def _make(event_id: int, event_type: str, data: dict | None = None, call_sid: str = "S1", created_at: str | None = None) -> CallEvent:
        return CallEvent(
            id=event_id,
            call_sid=call_sid,
            event_type=event_type,
            event_data=data or {},
            created_at=created_at or f"2025-01-15T10:00:{event_id:02d}+00:00",
        )

    return _make
