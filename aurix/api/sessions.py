# aurix/api/sessions.py
"""
Session read models and controls for the console.

Every read endpoint re-derives its projection from the stored timeline;
nothing is cached. The websocket sends one `snapshot` message and then an
`event` message per append, with no gaps and no duplicates.
"""
import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from aurix.core import projections
from aurix.core.simulator import reset_demo_session
from aurix.core.workflows import SessionContext, dismiss_session, end_call, lifecycle_state, start_call
from aurix.models.schemas import AuditTrail, EndCallRequest, EventType, WorkflowResult
from aurix.state import session_store
from aurix.state.event_stream import SubscriptionClosed, snapshot_and_tail
from aurix.storage import events_store

logger = logging.getLogger("aurix.api.sessions")
router = APIRouter()

PING_INTERVAL = 15.0


@router.get("", summary="List sessions, newest first")
async def list_sessions():
    events = await events_store.list_all()
    index = projections.build_session_index(events)
    states = {r.get("call_sid"): r.get("state") for r in await session_store.list_sessions()}
    return {"sessions": [{**entry.model_dump(), "lifecycle_state": states.get(entry.call_sid, "idle")} for entry in index]}


@router.get("/{call_sid}/events", summary="Raw timeline")
async def get_events(call_sid: str):
    events = await events_store.list_by_session(call_sid)
    return {"call_sid": call_sid, "events": [e.model_dump() for e in events]}


@router.get("/{call_sid}/transcript")
async def get_transcript(call_sid: str):
    events = await events_store.list_by_session(call_sid)
    turns = projections.build_transcript(events)
    return {"call_sid": call_sid, "transcript": [t.model_dump() for t in turns]}


@router.get("/{call_sid}/audit", response_model=AuditTrail)
async def get_audit(call_sid: str):
    events = await events_store.list_by_session(call_sid)
    return projections.build_audit_trail(events, call_sid=call_sid)


@router.get("/{call_sid}/summary")
async def get_summary(call_sid: str):
    events = await events_store.list_by_session(call_sid)
    summary = projections.summarize_session(events)
    duration = 0
    for event in reversed(events):
        if event.event_type == EventType.CALL_ENDED.value:
            duration = event.event_data.get("duration") or 0
            break
    return {
        "call_sid": call_sid,
        "summary": summary.model_dump(),
        "notes": projections.render_summary_notes(summary, duration),
    }


@router.get("/{call_sid}/lifecycle")
async def get_lifecycle(call_sid: str):
    return await lifecycle_state(call_sid)


@router.post("/{call_sid}/start", response_model=WorkflowResult)
async def start_session(call_sid: str):
    return await start_call(SessionContext(call_sid), source="console")


@router.post("/{call_sid}/end", response_model=WorkflowResult)
async def end_session(call_sid: str, req: EndCallRequest):
    return await end_call(SessionContext(call_sid), duration=req.duration, resolution=req.resolution)


@router.post("/{call_sid}/lifecycle/dismiss")
async def dismiss(call_sid: str):
    return await dismiss_session(SessionContext(call_sid))


@router.delete("/{call_sid}", summary="Administrative reset of one session")
async def reset_session(call_sid: str):
    removed = await reset_demo_session(call_sid)
    return {"status": "ok", "call_sid": call_sid, "events_deleted": removed}


@router.websocket("/{call_sid}/stream")
async def stream_session(websocket: WebSocket, call_sid: str):
    await websocket.accept()
    snapshot, sub = await snapshot_and_tail(call_sid)

    async def listen():
        # the console never sends anything; wait for it to go away
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                sub.close()
                return

    listener = asyncio.create_task(listen())
    try:
        await websocket.send_json(
            {"type": "snapshot", "call_sid": call_sid, "events": [e.model_dump() for e in snapshot]}
        )
        while True:
            try:
                event = await sub.get(timeout=PING_INTERVAL)
            except asyncio.TimeoutError:
                await websocket.send_json({"type": "ping"})
                continue
            await websocket.send_json({"type": "event", "event": event.model_dump()})
    except (WebSocketDisconnect, SubscriptionClosed):
        logger.debug("Console for %s disconnected", call_sid)
    finally:
        listener.cancel()
        sub.close()
