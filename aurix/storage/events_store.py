# aurix/storage/events_store.py
"""
Append-only call event store backed by databases/SQLAlchemy (async).

Exposes:
 - append(event) -> CallEvent
 - append_event(call_sid, event_type, event_data=None, customer_id=None) -> CallEvent
 - list_by_session(call_sid) -> List[CallEvent]   (ascending id)
 - list_all() -> List[CallEvent]                  (descending id)
 - delete_by_session(call_sid) -> int             (administrative reset)
 - latest_event_id(call_sid) -> int

Every failure to reach the database surfaces as StoreUnavailable.
"""
import datetime
import json
import logging
from typing import Any, Dict, List, Optional, Union

import pydantic
import sqlalchemy as sa

from aurix.core.errors import StoreUnavailable, ValidationError
from aurix.core.locks import SessionLocks
from aurix.db.db import get_database
from aurix.models.db_models import call_events
from aurix.models.schemas import CallEvent, CallEventIn, EventType
from aurix.state.event_stream import get_event_stream

logger = logging.getLogger("aurix.storage.events")

# insert + publish must not interleave within one session
_append_locks = SessionLocks("append")


def _utcnow() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


def _connected_db():
    db = get_database()
    if not db.is_connected:
        raise StoreUnavailable("event store is not connected")
    return db


def _row_to_event(row) -> CallEvent:
    try:
        data = json.loads(row["event_data_json"] or "{}")
    except ValueError:
        logger.warning("Unreadable payload on event %s; treating as empty", row["id"])
        data = {}
    return CallEvent(
        id=row["id"],
        call_sid=row["call_sid"],
        customer_id=row["customer_id"],
        event_type=row["event_type"],
        event_data=data if isinstance(data, dict) else {"value": data},
        created_at=row["created_at"],
    )


def _coerce(event: Union[CallEventIn, Dict[str, Any]]) -> CallEventIn:
    if isinstance(event, CallEventIn):
        parsed = event
    else:
        try:
            parsed = CallEventIn(**event)
        except pydantic.ValidationError as exc:
            raise ValidationError(f"invalid event: {exc.errors()[0].get('msg')}") from exc
    if not parsed.call_sid:
        raise ValidationError("call_sid is required", field="call_sid")
    if not parsed.event_type:
        raise ValidationError("event_type is required", field="event_type")
    return parsed


async def append(event: Union[CallEventIn, Dict[str, Any]]) -> CallEvent:
    """
    Persist one event and publish it to live subscribers of its session.

    Returns the stored event (with id/created_at). Raises ValidationError for a
    malformed event and StoreUnavailable when the database cannot be written.
    """
    parsed = _coerce(event)
    try:
        payload_json = json.dumps(parsed.event_data, default=str)
    except (TypeError, ValueError) as exc:
        raise ValidationError("event_data must be JSON serialisable", field="event_data") from exc
    created_at = parsed.created_at or _utcnow()

    async with _append_locks.hold(parsed.call_sid):
        db = _connected_db()
        query = call_events.insert().values(
            call_sid=parsed.call_sid,
            customer_id=parsed.customer_id,
            event_type=parsed.event_type,
            event_data_json=payload_json,
            created_at=created_at,
        )
        try:
            row_id = await db.execute(query)
        except Exception as exc:
            logger.exception("Failed to append %s event for %s", parsed.event_type, parsed.call_sid)
            raise StoreUnavailable("failed to append event") from exc

        stored = CallEvent(
            id=row_id,
            call_sid=parsed.call_sid,
            customer_id=parsed.customer_id,
            event_type=parsed.event_type,
            event_data=json.loads(payload_json),
            created_at=created_at,
        )
        delivered = get_event_stream().publish(stored)

    logger.debug("Appended event %s (%s) for %s -> %d observers", stored.id, stored.event_type, stored.call_sid, delivered)
    return stored


async def append_event(
    call_sid: str,
    event_type: Union[EventType, str],
    event_data: Optional[Dict[str, Any]] = None,
    customer_id: Optional[str] = None,
) -> CallEvent:
    """Convenience wrapper around append() taking raw parameters."""
    if isinstance(event_type, EventType):
        event_type = event_type.value
    return await append(
        CallEventIn(call_sid=call_sid, event_type=event_type, event_data=event_data or {}, customer_id=customer_id)
    )


async def list_by_session(call_sid: str) -> List[CallEvent]:
    db = _connected_db()
    q = call_events.select().where(call_events.c.call_sid == call_sid).order_by(call_events.c.id.asc())
    try:
        rows = await db.fetch_all(q)
    except Exception as exc:
        logger.exception("Failed to read events for %s", call_sid)
        raise StoreUnavailable("failed to read events") from exc
    return [_row_to_event(r) for r in rows]


async def list_all() -> List[CallEvent]:
    """All events across sessions, newest first."""
    db = _connected_db()
    q = call_events.select().order_by(call_events.c.id.desc())
    try:
        rows = await db.fetch_all(q)
    except Exception as exc:
        logger.exception("Failed to read event log")
        raise StoreUnavailable("failed to read events") from exc
    return [_row_to_event(r) for r in rows]


async def latest_event_id(call_sid: str) -> int:
    db = _connected_db()
    q = sa.select(sa.func.max(call_events.c.id)).where(call_events.c.call_sid == call_sid)
    try:
        value = await db.fetch_val(q)
    except Exception as exc:
        raise StoreUnavailable("failed to read events") from exc
    return value or 0


async def delete_by_session(call_sid: str) -> int:
    """
    Administrative reset: remove every event of a session. Destructive and
    idempotent; returns the number of events removed (0 for an empty session).
    """
    async with _append_locks.hold(call_sid):
        db = _connected_db()
        count_q = sa.select(sa.func.count()).select_from(call_events).where(call_events.c.call_sid == call_sid)
        delete_q = call_events.delete().where(call_events.c.call_sid == call_sid)
        try:
            async with db.transaction():
                count = await db.fetch_val(count_q) or 0
                if count:
                    await db.execute(delete_q)
        except Exception as exc:
            logger.exception("Failed to reset session %s", call_sid)
            raise StoreUnavailable("failed to reset session") from exc

    logger.info("Reset session %s (%d events removed)", call_sid, count)
    return count
