# aurix/storage/escalations_store.py
"""
Clinician escalation records backed by the database.

Unlike call events these rows are mutable: they model a follow-up workflow
    pending_customer_decision -> callback_scheduled -> resolved
and every update is guarded on the current status so no state is skipped.

Exposes:
 - create_escalation(...)
 - schedule_callback(call_sid, customer_id=None, window_hours=None)
 - resolve_escalation(escalation_id, resolved_by)
 - get_escalation(escalation_id)
 - list_escalations(call_sid=None, status=None)
"""
import datetime
import logging
from typing import List, Optional

from aurix.config import get_settings
from aurix.core.errors import DownstreamUnavailable, InvalidTransition, LookupNotFound
from aurix.db.db import get_database
from aurix.models.db_models import clinician_escalations
from aurix.models.schemas import Escalation, EscalationStatus

logger = logging.getLogger("aurix.storage.escalations")
settings = get_settings()

PENDING = EscalationStatus.PENDING_CUSTOMER_DECISION.value
SCHEDULED = EscalationStatus.CALLBACK_SCHEDULED.value
RESOLVED = EscalationStatus.RESOLVED.value


def _now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def _to_model(row) -> Escalation:
    d = dict(row._mapping)
    d["callback_requested"] = bool(d.get("callback_requested"))
    return Escalation(**d)


async def get_escalation(escalation_id: int) -> Escalation:
    db = get_database()
    try:
        row = await db.fetch_one(clinician_escalations.select().where(clinician_escalations.c.id == escalation_id))
    except Exception as exc:
        raise DownstreamUnavailable("escalations", str(exc)) from exc
    if not row:
        raise LookupNotFound("escalation", str(escalation_id))
    return _to_model(row)


async def create_escalation(
    call_sid: str,
    inquiry_type: Optional[str],
    blocked_reason: Optional[str],
    customer_id: Optional[str] = None,
    inquiry_text: Optional[str] = None,
    agent_response: Optional[str] = None,
) -> Escalation:
    """Open a new escalation in `pending_customer_decision`."""
    db = get_database()
    query = clinician_escalations.insert().values(
        call_sid=call_sid,
        customer_id=customer_id,
        inquiry_type=inquiry_type,
        inquiry_text=(inquiry_text or "")[:500] or None,
        blocked_reason=blocked_reason,
        escalation_status=PENDING,
        callback_requested=False,
        agent_response=agent_response,
        created_at=_now().isoformat(),
    )
    try:
        row_id = await db.execute(query)
    except Exception as exc:
        logger.exception("Failed to create escalation for %s", call_sid)
        raise DownstreamUnavailable("escalations", str(exc)) from exc
    logger.info("Opened escalation %s for %s (%s)", row_id, call_sid, inquiry_type)
    return await get_escalation(row_id)


async def schedule_callback(
    call_sid: str,
    customer_id: Optional[str] = None,
    window_hours: Optional[float] = None,
) -> Optional[Escalation]:
    """
    Move the most recent pending escalation of `call_sid` to callback_scheduled.

    Only that single record is touched; older pending records and records in any
    other state are left alone. Returns None when the session has no pending
    escalation.
    """
    db = get_database()
    hours = settings.CALLBACK_WINDOW_HOURS if window_hours is None else window_hours
    select_q = (
        clinician_escalations.select()
        .where(clinician_escalations.c.call_sid == call_sid)
        .where(clinician_escalations.c.escalation_status == PENDING)
        .order_by(clinician_escalations.c.created_at.desc(), clinician_escalations.c.id.desc())
        .limit(1)
    )
    try:
        async with db.transaction():
            row = await db.fetch_one(select_q)
            if not row:
                return None
            values = {
                "escalation_status": SCHEDULED,
                "callback_requested": True,
                "callback_scheduled_at": (_now() + datetime.timedelta(hours=hours)).isoformat(),
            }
            if customer_id:
                values["customer_id"] = customer_id
            update_q = (
                clinician_escalations.update()
                .where(clinician_escalations.c.id == row["id"])
                .where(clinician_escalations.c.escalation_status == PENDING)
                .values(**values)
            )
            await db.execute(update_q)
    except Exception as exc:
        logger.exception("Failed to schedule callback for %s", call_sid)
        raise DownstreamUnavailable("escalations", str(exc)) from exc

    logger.info("Escalation %s for %s moved to %s", row["id"], call_sid, SCHEDULED)
    return await get_escalation(row["id"])


async def resolve_escalation(escalation_id: int, resolved_by: str) -> Escalation:
    """callback_scheduled -> resolved. Any other starting state is rejected."""
    current = await get_escalation(escalation_id)
    if current.escalation_status != EscalationStatus.CALLBACK_SCHEDULED:
        raise InvalidTransition(current.escalation_status.value, RESOLVED)

    db = get_database()
    update_q = (
        clinician_escalations.update()
        .where(clinician_escalations.c.id == escalation_id)
        .where(clinician_escalations.c.escalation_status == SCHEDULED)
        .values(escalation_status=RESOLVED, resolved_at=_now().isoformat(), resolved_by=resolved_by)
    )
    try:
        await db.execute(update_q)
    except Exception as exc:
        raise DownstreamUnavailable("escalations", str(exc)) from exc
    logger.info("Escalation %s resolved by %s", escalation_id, resolved_by)
    return await get_escalation(escalation_id)


async def list_escalations(call_sid: Optional[str] = None, status: Optional[str] = None) -> List[Escalation]:
    db = get_database()
    q = clinician_escalations.select()
    if call_sid:
        q = q.where(clinician_escalations.c.call_sid == call_sid)
    if status:
        q = q.where(clinician_escalations.c.escalation_status == status)
    q = q.order_by(clinician_escalations.c.id.desc())
    try:
        rows = await db.fetch_all(q)
    except Exception as exc:
        raise DownstreamUnavailable("escalations", str(exc)) from exc
    return [_to_model(r) for r in rows]
