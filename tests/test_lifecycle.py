"""Tests for the session lifecycle state machine and its SMS prompt."""
from __future__ import annotations

import asyncio

import pytest

from aurix.core.errors import InvalidTransition
from aurix.core.lifecycle import ACTIVE, IDLE, SUMMARIZING, LifecycleRegistry, SessionLifecycle, get_lifecycle_registry
from aurix.core.workflows import SessionContext, dismiss_session, end_call, lifecycle_state, start_call
from aurix.models.schemas import EventType
from aurix.state import session_store
from aurix.storage import events_store


@pytest.fixture
def quick_prompt(fast_settings, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(fast_settings, "PROMPT_QUIET_SECONDS", 0.02)
    monkeypatch.setattr(fast_settings, "PROMPT_HARD_TIMEOUT_SECONDS", 0.2)
    return fast_settings


async def _types(call_sid: str) -> list:
    return [e.event_type for e in await events_store.list_by_session(call_sid)]


class TestTransitions:
    """Tests for explicit transitions."""

    @pytest.mark.asyncio
    async def test_full_cycle(self) -> None:
        lc = SessionLifecycle("S1")

        await lc.start()
        assert lc.state == ACTIVE
        await lc.end()
        assert lc.state == SUMMARIZING
        await lc.dismiss()
        assert lc.state == IDLE

    @pytest.mark.asyncio
    async def test_state_is_persisted(self) -> None:
        lc = SessionLifecycle("S1")
        await lc.start()
        await lc.end("caller_disconnected")

        record = await session_store.get_session("S1")
        assert record["state"] == SUMMARIZING
        assert record["end_reason"] == "caller_disconnected"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "state, move",
        [(IDLE, "end"), (IDLE, "dismiss"), (ACTIVE, "start"), (ACTIVE, "dismiss"), (SUMMARIZING, "start"), (SUMMARIZING, "end")],
    )
    async def test_illegal_moves(self, state: str, move: str) -> None:
        lc = SessionLifecycle("S1", state)

        with pytest.raises(InvalidTransition):
            await getattr(lc, move)()
        assert lc.state == state

    @pytest.mark.asyncio
    async def test_registry_restores_persisted_state(self) -> None:
        await session_store.set_session("S1", {"call_sid": "S1", "state": SUMMARIZING})

        lc = await LifecycleRegistry().get("S1")

        assert lc.state == SUMMARIZING


class TestObserve:
    """Tests for the tolerant event-driven variant."""

    @pytest.mark.asyncio
    async def test_ignores_events_that_do_not_apply(self, make_event) -> None:
        lc = SessionLifecycle("S1")

        await lc.observe(make_event(1, "call_ended", {}))
        assert lc.state == IDLE
        await lc.observe(make_event(2, "call_started", {}))
        await lc.observe(make_event(3, "call_started", {}))
        assert lc.state == ACTIVE
        await lc.observe(make_event(4, "call_ended", {}))
        assert lc.state == SUMMARIZING

    @pytest.mark.asyncio
    async def test_sms_action_arms_prompt_only_while_active(self, make_event, quick_prompt) -> None:
        lc = SessionLifecycle("S1")
        await lc.observe(make_event(1, "action", {"type": "sms", "order_id": "ORD_7823"}))
        assert lc.prompt is None

        await lc.start()
        await lc.observe(make_event(2, "action", {"type": "sms", "order_id": "ORD_7823"}))
        assert lc.as_dict()["prompt_pending"] is True
        lc._cancel_prompt()


class TestSmsPrompt:
    """Tests for the post-action SMS prompt."""

    @pytest.mark.asyncio
    async def test_prompt_logged_after_quiet_period(self, db, make_event, quick_prompt) -> None:
        lc = SessionLifecycle("S1")
        await lc.start()

        await lc.observe(make_event(1, "action", {"type": "sms", "order_id": "ORD_7823", "tracking_number": "TRK789012"}))
        await lc.observe(make_event(2, "agent_spoke", {"text": "I'll text you"}))
        await asyncio.sleep(0.06)
        await lc.prompt.task

        events = await events_store.list_by_session("S1")
        assert [e.event_type for e in events] == ["sms_prompt"]
        assert events[0].event_data["order_id"] == "ORD_7823"
        assert events[0].event_data["tracking_number"] == "TRK789012"

    @pytest.mark.asyncio
    async def test_call_end_cancels_prompt(self, db, make_event, quick_prompt) -> None:
        lc = SessionLifecycle("S1")
        await lc.start()
        await lc.observe(make_event(1, "action", {"type": "sms", "order_id": "ORD_7823"}))
        prompt = lc.prompt

        await lc.end()
        await asyncio.sleep(0.06)

        assert prompt.fired is False
        assert await _types("S1") == []


class TestRegistryWatch:
    """The watcher feeds appended events into the lifecycle."""

    @pytest.mark.asyncio
    async def test_watch_drives_prompt_and_end(self, db, quick_prompt) -> None:
        registry = LifecycleRegistry()
        lc = await registry.get("S1")
        await lc.start()
        task = registry.watch("S1")
        await asyncio.sleep(0)

        await events_store.append_event("S1", EventType.ACTION, {"type": "sms", "order_id": "ORD_7823"})
        await asyncio.sleep(0.08)
        await events_store.append_event("S1", EventType.CALL_ENDED, {"duration": 10})
        await asyncio.wait_for(task, 1)

        assert lc.state == SUMMARIZING
        assert await _types("S1") == ["action", "sms_prompt", "call_ended"]
        await registry.shutdown()

    @pytest.mark.asyncio
    async def test_reset_forgets_session(self, db) -> None:
        registry = LifecycleRegistry()
        lc = await registry.get("S1")
        await lc.start()
        registry.watch("S1")

        await registry.reset("S1")

        assert await session_store.get_session("S1") is None
        assert (await registry.get("S1")).state == IDLE

    @pytest.mark.asyncio
    async def test_watch_ignores_earlier_calls(self, db) -> None:
        await events_store.append_event("S1", EventType.CALL_STARTED, {})
        await events_store.append_event("S1", EventType.CALL_ENDED, {"duration": 5})
        registry = LifecycleRegistry()
        lc = await registry.get("S1")
        await lc.start()

        registry.watch("S1")
        await asyncio.sleep(0.01)

        assert lc.state == ACTIVE
        await registry.shutdown()


class TestRegistryHousekeeping:
    """Finished sessions are not kept in memory."""

    @pytest.mark.asyncio
    async def test_registry_empty_after_full_cycle(self, db) -> None:
        registry = get_lifecycle_registry()

        for n in range(5):
            ctx = SessionContext(f"C{n}")
            await start_call(ctx)
            await end_call(ctx)
            await asyncio.sleep(0.01)
            await dismiss_session(ctx)

        assert not [sid for sid in registry._sessions if sid.startswith("C")]
        assert not [sid for sid in registry._watchers if sid.startswith("C")]

    @pytest.mark.asyncio
    async def test_reading_state_does_not_track(self, db) -> None:
        registry = get_lifecycle_registry()

        state = await lifecycle_state("NEVER_SEEN")

        assert state["state"] == IDLE
        assert "NEVER_SEEN" not in registry._sessions

    @pytest.mark.asyncio
    async def test_failed_dismiss_does_not_track(self, db) -> None:
        registry = get_lifecycle_registry()

        with pytest.raises(InvalidTransition):
            await dismiss_session(SessionContext("NEVER_SEEN"))

        assert "NEVER_SEEN" not in registry._sessions
