"""Tests for the live event tail and the snapshot+tail seam."""
from __future__ import annotations

import asyncio

import pytest

from aurix.models.schemas import EventType
from aurix.state.event_stream import SubscriptionClosed, get_event_stream, snapshot_and_tail
from aurix.storage import events_store


class TestSubscription:
    """Tests for per-session subscriptions."""

    @pytest.mark.asyncio
    async def test_receives_events_appended_after_subscribing(self, db) -> None:
        await events_store.append_event("S1", EventType.USER_SPOKE, {"text": "before"})
        sub = get_event_stream().subscribe("S1")

        after = await events_store.append_event("S1", EventType.USER_SPOKE, {"text": "after"})

        event = await sub.get(timeout=1)
        assert event.id == after.id
        assert sub.drain() == []
        sub.close()

    @pytest.mark.asyncio
    async def test_only_own_session(self, db) -> None:
        sub = get_event_stream().subscribe("S1")
        await events_store.append_event("S2", EventType.USER_SPOKE, {"text": "elsewhere"})
        mine = await events_store.append_event("S1", EventType.USER_SPOKE, {"text": "mine"})

        assert [e.id for e in sub.drain()] == [mine.id]
        sub.close()

    @pytest.mark.asyncio
    async def test_preserves_append_order(self, db) -> None:
        sub = get_event_stream().subscribe("S1")
        ids = [(await events_store.append_event("S1", EventType.USER_SPOKE, {"text": str(i)})).id for i in range(5)]

        assert [e.id for e in sub.drain()] == ids
        sub.close()

    @pytest.mark.asyncio
    async def test_duplicate_deliveries_are_dropped(self, db) -> None:
        sub = get_event_stream().subscribe("S1")
        stored = await events_store.append_event("S1", EventType.USER_SPOKE, {"text": "x"})
        get_event_stream().publish(stored)

        assert [e.id for e in sub.drain()] == [stored.id]
        sub.close()

    @pytest.mark.asyncio
    async def test_get_times_out(self, db) -> None:
        sub = get_event_stream().subscribe("S1")
        with pytest.raises(asyncio.TimeoutError):
            await sub.get(timeout=0.01)
        sub.close()

    @pytest.mark.asyncio
    async def test_close_unsubscribes_and_wakes_reader(self, db) -> None:
        stream = get_event_stream()
        sub = stream.subscribe("S1")
        reader = asyncio.ensure_future(sub.get())
        await asyncio.sleep(0)

        sub.close()

        with pytest.raises(SubscriptionClosed):
            await reader
        assert stream.subscriber_count("S1") == 0

    @pytest.mark.asyncio
    async def test_async_iteration_ends_on_close(self, db) -> None:
        sub = get_event_stream().subscribe("S1")
        await events_store.append_event("S1", EventType.USER_SPOKE, {"text": "a"})
        seen = []

        async def consume() -> None:
            async with sub:
                async for event in sub:
                    seen.append(event.event_data["text"])

        task = asyncio.ensure_future(consume())
        await asyncio.sleep(0.01)
        sub.close()
        await asyncio.wait_for(task, 1)

        assert seen == ["a"]


class TestSnapshotAndTail:
    """Tests for the gapless, duplicate-free seam between history and live tail."""

    @pytest.mark.asyncio
    async def test_snapshot_plus_tail_matches_final_read(self, db) -> None:
        for i in range(3):
            await events_store.append_event("S1", EventType.USER_SPOKE, {"text": f"early {i}"})

        writer = asyncio.ensure_future(
            asyncio.gather(*(events_store.append_event("S1", EventType.AGENT_SPOKE, {"text": f"late {i}"}) for i in range(5)))
        )
        snapshot, sub = await snapshot_and_tail("S1")
        await writer
        tail = sub.drain()
        sub.close()

        combined = {e.id for e in snapshot} | {e.id for e in tail}
        final = await events_store.list_by_session("S1")
        assert combined == {e.id for e in final}
        assert len(snapshot) + len(tail) == len(final)

    @pytest.mark.asyncio
    async def test_empty_session(self, db) -> None:
        snapshot, sub = await snapshot_and_tail("EMPTY")
        stored = await events_store.append_event("EMPTY", EventType.CALL_STARTED, {})

        assert snapshot == []
        assert [e.id for e in sub.drain()] == [stored.id]
        sub.close()
