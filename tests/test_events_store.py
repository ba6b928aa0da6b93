"""Tests for the append-only call event store."""
from __future__ import annotations

import asyncio

import pytest

from aurix.core.errors import StoreUnavailable, ValidationError
from aurix.db.db import disconnect_db
from aurix.models.schemas import CallEventIn, EventType
from aurix.storage import events_store


class TestAppend:
    """Tests for append / append_event."""

    @pytest.mark.asyncio
    async def test_assigns_increasing_ids_and_timestamps(self, db) -> None:
        first = await events_store.append_event("S1", EventType.USER_SPOKE, {"text": "Hi"})
        second = await events_store.append_event("S1", EventType.AGENT_SPOKE, {"text": "Hello"})

        assert second.id > first.id
        assert first.created_at
        assert first.event_type == "user_spoke"
        assert first.event_data == {"text": "Hi"}

    @pytest.mark.asyncio
    async def test_accepts_plain_dict(self, db) -> None:
        stored = await events_store.append({"call_sid": "S1", "event_type": "call_started", "event_data": {"source": "test"}})

        assert stored.call_sid == "S1"
        assert stored.event_data["source"] == "test"

    @pytest.mark.asyncio
    async def test_missing_call_sid_is_rejected(self, db) -> None:
        with pytest.raises(ValidationError):
            await events_store.append(CallEventIn(call_sid="", event_type="user_spoke"))

    @pytest.mark.asyncio
    async def test_missing_event_type_is_rejected(self, db) -> None:
        with pytest.raises(ValidationError):
            await events_store.append({"call_sid": "S1", "event_type": ""})

    @pytest.mark.asyncio
    async def test_unknown_event_types_are_stored(self, db) -> None:
        stored = await events_store.append_event("S1", "custom_marker", {"x": 1})

        events = await events_store.list_by_session("S1")
        assert [e.id for e in events] == [stored.id]

    @pytest.mark.asyncio
    async def test_disconnected_store_raises_store_unavailable(self, db) -> None:
        await disconnect_db()

        with pytest.raises(StoreUnavailable):
            await events_store.append_event("S1", EventType.USER_SPOKE, {"text": "Hi"})
        with pytest.raises(StoreUnavailable):
            await events_store.list_by_session("S1")


class TestListBySession:
    """Tests for list_by_session ordering."""

    @pytest.mark.asyncio
    async def test_returns_events_in_append_order(self, db) -> None:
        appended = []
        for i in range(20):
            event = await events_store.append_event("S1", EventType.USER_SPOKE, {"text": f"turn {i}"})
            appended.append(event.id)

        events = await events_store.list_by_session("S1")

        assert [e.id for e in events] == appended
        assert [e.event_data["text"] for e in events] == [f"turn {i}" for i in range(20)]

    @pytest.mark.asyncio
    async def test_concurrent_appends_keep_one_copy_each(self, db) -> None:
        await asyncio.gather(
            *(events_store.append_event("S1", EventType.USER_SPOKE, {"text": str(i)}) for i in range(10))
        )

        events = await events_store.list_by_session("S1")

        assert len(events) == 10
        assert sorted(e.event_data["text"] for e in events) == sorted(str(i) for i in range(10))
        assert [e.id for e in events] == sorted(e.id for e in events)

    @pytest.mark.asyncio
    async def test_sessions_are_isolated(self, db) -> None:
        await events_store.append_event("S1", EventType.USER_SPOKE, {"text": "one"})
        await events_store.append_event("S2", EventType.USER_SPOKE, {"text": "two"})

        events = await events_store.list_by_session("S2")

        assert [e.event_data["text"] for e in events] == ["two"]

    @pytest.mark.asyncio
    async def test_unknown_session_is_empty(self, db) -> None:
        assert await events_store.list_by_session("nope") == []


class TestListAll:
    """Tests for the global newest-first listing."""

    @pytest.mark.asyncio
    async def test_newest_first(self, db) -> None:
        a = await events_store.append_event("S1", EventType.USER_SPOKE, {"text": "a"})
        b = await events_store.append_event("S2", EventType.USER_SPOKE, {"text": "b"})

        events = await events_store.list_all()

        assert [e.id for e in events] == [b.id, a.id]

    @pytest.mark.asyncio
    async def test_latest_event_id(self, db) -> None:
        assert await events_store.latest_event_id("S1") == 0
        stored = await events_store.append_event("S1", EventType.USER_SPOKE, {"text": "a"})
        assert await events_store.latest_event_id("S1") == stored.id


class TestDeleteBySession:
    """Tests for the administrative reset."""

    @pytest.mark.asyncio
    async def test_reset_demo_session(self, db) -> None:
        await events_store.append_event("DEMO", EventType.CALL_STARTED, {})
        await events_store.append_event("DEMO", EventType.USER_SPOKE, {"text": "Hi"})

        removed = await events_store.delete_by_session("DEMO")

        assert removed == 2
        assert await events_store.list_by_session("DEMO") == []

    @pytest.mark.asyncio
    async def test_reset_empty_session_is_noop(self, db) -> None:
        assert await events_store.delete_by_session("EMPTY") == 0
        assert await events_store.list_by_session("EMPTY") == []

    @pytest.mark.asyncio
    async def test_reset_leaves_other_sessions(self, db) -> None:
        await events_store.append_event("DEMO", EventType.USER_SPOKE, {"text": "Hi"})
        await events_store.append_event("OTHER", EventType.USER_SPOKE, {"text": "Hi"})

        await events_store.delete_by_session("DEMO")

        assert len(await events_store.list_by_session("OTHER")) == 1
