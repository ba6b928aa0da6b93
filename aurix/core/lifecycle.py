# aurix/core/lifecycle.py
"""
Session lifecycle: idle -> active -> summarizing -> idle.

 - idle -> active on call_started
 - active -> summarizing on call_ended or a disconnect signal
 - summarizing -> idle on dismissal

While a session is active, an `action` of type `sms` arms the post-action
prompt debounce and every later `agent_spoke` pokes it. When it fires (and the
session is still active) an `sms_prompt` event is appended so consoles can
offer to text the details. Leaving `active` cancels the debounce.

Explicit transitions (start/end/dismiss) raise InvalidTransition when illegal.
`observe(event)` is the tolerant variant used by the stream watcher: events
that don't apply to the current state are ignored.

Exposes:
 - SessionLifecycle
 - LifecycleRegistry / get_lifecycle_registry()
"""
import asyncio
import datetime
import logging
from typing import Any, Dict, Optional

from aurix.config import get_settings
from aurix.core.debounce import Debouncer
from aurix.core.errors import AurixError, InvalidTransition
from aurix.core.locks import workflow_locks
from aurix.models.schemas import CallEvent, EventType
from aurix.state import session_store
from aurix.state.event_stream import Subscription, get_event_stream
from aurix.storage.events_store import append_event

logger = logging.getLogger("aurix.core.lifecycle")
settings = get_settings()

IDLE = "idle"
ACTIVE = "active"
SUMMARIZING = "summarizing"

_ALLOWED = {
    (IDLE, ACTIVE),
    (ACTIVE, SUMMARIZING),
    (SUMMARIZING, IDLE),
}


def _now() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


class SessionLifecycle:
    def __init__(self, call_sid: str, state: str = IDLE):
        self.call_sid = call_sid
        self.state = state
        self.prompt: Optional[Debouncer] = None
        self._pending_sms: Dict[str, Any] = {}

    async def _move(self, target: str, **extra) -> None:
        if (self.state, target) not in _ALLOWED:
            raise InvalidTransition(self.state, target)
        previous, self.state = self.state, target
        if previous == ACTIVE:
            self._cancel_prompt()
        await session_store.update_session(self.call_sid, {"state": target, "updated_at": _now(), **extra})
        logger.info("Session %s: %s -> %s", self.call_sid, previous, target)

    async def start(self) -> None:
        await self._move(ACTIVE, started_at=_now(), ended_at=None, end_reason=None)

    async def end(self, reason: str = "call_ended") -> None:
        await self._move(SUMMARIZING, ended_at=_now(), end_reason=reason)

    async def dismiss(self) -> None:
        await self._move(IDLE)

    async def observe(self, event: CallEvent) -> None:
        etype = event.event_type
        if etype == EventType.CALL_STARTED.value:
            if self.state == IDLE:
                await self.start()
        elif etype == EventType.CALL_ENDED.value:
            if self.state == ACTIVE:
                await self.end()
        elif self.state != ACTIVE:
            return
        elif etype == EventType.ACTION.value and event.event_data.get("type") == "sms":
            self._arm_prompt(event.event_data)
        elif etype == EventType.AGENT_SPOKE.value and self.prompt is not None:
            self.prompt.poke()

    def _arm_prompt(self, action: Dict[str, Any]) -> None:
        self._cancel_prompt()
        self._pending_sms = {
            "message_type": action.get("message_type") or "tracking",
            "order_id": action.get("order_id"),
            "tracking_number": action.get("tracking_number"),
        }
        self.prompt = Debouncer(settings.PROMPT_QUIET_SECONDS, settings.PROMPT_HARD_TIMEOUT_SECONDS, self._send_prompt)
        self.prompt.poke()

    def _cancel_prompt(self) -> None:
        if self.prompt is not None:
            self.prompt.cancel()
            self.prompt = None

    async def _send_prompt(self) -> None:
        async with workflow_locks.hold(self.call_sid):
            if self.state != ACTIVE:
                return
            data = dict(self._pending_sms)
            data["prompt_text"] = "Would you like me to text you these details?"
            try:
                await append_event(self.call_sid, EventType.SMS_PROMPT, data)
            except AurixError:
                logger.exception("Could not log SMS prompt for %s", self.call_sid)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "call_sid": self.call_sid,
            "state": self.state,
            "prompt_pending": bool(self.prompt and self.prompt.pending),
        }


class LifecycleRegistry:
    """Process-wide map of live lifecycles plus their stream watchers."""

    def __init__(self):
        self._sessions: Dict[str, SessionLifecycle] = {}
        self._watchers: Dict[str, asyncio.Task] = {}

    async def get(self, call_sid: str) -> SessionLifecycle:
        lc = self._sessions.get(call_sid)
        if lc is None:
            record = await session_store.get_session(call_sid) or {}
            lc = SessionLifecycle(call_sid, record.get("state", IDLE))
            self._sessions[call_sid] = lc
        return lc

    async def peek(self, call_sid: str) -> SessionLifecycle:
        """Read-only view: the live lifecycle when there is one, else a transient copy of the stored state."""
        lc = self._sessions.get(call_sid)
        if lc is not None:
            return lc
        record = await session_store.get_session(call_sid) or {}
        return SessionLifecycle(call_sid, record.get("state", IDLE))

    async def dismiss(self, call_sid: str) -> SessionLifecycle:
        """summarizing -> idle, then stop tracking the session."""
        lc = await self.get(call_sid)
        try:
            await lc.dismiss()
        finally:
            if lc.state == IDLE and lc.prompt is None:
                self._sessions.pop(call_sid, None)
        return lc

    def watch(self, call_sid: str) -> asyncio.Task:
        """Start feeding the session's events into its lifecycle (no-op if already watching)."""
        task = self._watchers.get(call_sid)
        if task is None or task.done():
            # subscribe now so nothing appended before the task first runs is missed
            sub = get_event_stream().subscribe(call_sid)
            task = asyncio.create_task(self._watch(call_sid, sub))

            def _finished(done: asyncio.Task) -> None:
                sub.close()
                if self._watchers.get(call_sid) is done:
                    del self._watchers[call_sid]

            task.add_done_callback(_finished)
            self._watchers[call_sid] = task
        return task

    async def _watch(self, call_sid: str, sub: Subscription) -> None:
        lc = await self.get(call_sid)
        async with sub:
            async for event in sub:
                await lc.observe(event)
                if event.event_type == EventType.CALL_ENDED.value:
                    break
        logger.debug("Stopped watching %s", call_sid)

    async def reset(self, call_sid: str) -> None:
        task = self._watchers.pop(call_sid, None)
        if task is not None and not task.done():
            task.cancel()
        lc = self._sessions.pop(call_sid, None)
        if lc is not None:
            lc._cancel_prompt()
        await session_store.delete_session(call_sid)

    async def shutdown(self) -> None:
        """Stop watchers and timers; persisted lifecycle records are kept."""
        for task in self._watchers.values():
            task.cancel()
        for lc in self._sessions.values():
            lc._cancel_prompt()
        self._watchers = {}
        self._sessions = {}


_registry = LifecycleRegistry()


def get_lifecycle_registry() -> LifecycleRegistry:
    return _registry
