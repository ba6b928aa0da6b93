# aurix/core/projections.py
"""
Read-side views over the call event log.

Every function here is pure: it takes an ordered list of CallEvent for one
session (or, for the session index, the global newest-first list) and folds
it into a view. Nothing is cached; callers recompute from a fresh read.

Rules shared by all projections:
 - events are de-duplicated by id first (the live tail is at-least-once)
 - unknown event types are ignored
 - missing payload fields are treated as absent, never as errors
"""
import datetime
import json
from typing import Any, Dict, Iterable, List, Optional

from aurix.core.extractors import DEFAULT_ORDER_REF_EXTRACTOR, OrderRefExtractor
from aurix.models.schemas import (
    ActionPerformed,
    AuditEntry,
    AuditTrail,
    CallEvent,
    EventType,
    SessionIndexEntry,
    SessionSummary,
    TranscriptTurn,
)

ESCALATION_ACTION_TYPES = frozenset({"escalation", "clinician_escalation", "clinician_callback_booked"})
KNOWN_EVENT_TYPES = frozenset(t.value for t in EventType)


def dedupe_events(events: Iterable[CallEvent]) -> List[CallEvent]:
    seen = set()
    unique = []
    for event in events:
        if event.id in seen:
            continue
        seen.add(event.id)
        unique.append(event)
    return unique


def _data(event: CallEvent) -> Dict[str, Any]:
    return event.event_data if isinstance(event.event_data, dict) else {}


def _action_items(data: Dict[str, Any]) -> List[Dict[str, Any]]:
    # older address-change events bundle several side effects in one "actions" list
    bundled = data.get("actions")
    if isinstance(bundled, list):
        return [item for item in bundled if isinstance(item, dict)]
    return [data]


def is_escalation_action(event: CallEvent) -> bool:
    if event.event_type != EventType.ACTION.value:
        return False
    return any(item.get("type") in ESCALATION_ACTION_TYPES for item in _action_items(_data(event)))


def is_blocking_event(event: CallEvent) -> bool:
    if event.event_type == EventType.COMPLIANCE_CHECK.value:
        return _data(event).get("allowed") is False
    return is_escalation_action(event)


def is_blocked(events: Iterable[CallEvent]) -> bool:
    """True once any compliance check was denied or any escalation action was logged."""
    return any(is_blocking_event(e) for e in events)


def verification_method(event: CallEvent) -> Optional[str]:
    """Return the verification method if this event records a passed identity check, else None."""
    data = _data(event)
    if event.event_type == EventType.IDENTITY_VERIFICATION.value:
        if data.get("verified") is True or data.get("compliance") == "PASSED":
            return str(data.get("method") or "verified").replace("_", " ")
    elif event.event_type == EventType.COMPLIANCE_CHECK.value:
        if data.get("check_type") == "identity_verification" and data.get("result") == "PASSED":
            return str(data.get("method") or "verified").replace("_", " ")
    return None


def is_verified(events: Iterable[CallEvent]) -> bool:
    return any(verification_method(e) is not None for e in events)


def display_date(value: Any) -> str:
    text = str(value)
    try:
        d = datetime.date.fromisoformat(text[:10])
    except ValueError:
        return text
    return f"{d.day} {d:%B %Y}"


def _information_from_results(data: Dict[str, Any]) -> List[str]:
    info = []
    status = data.get("order_status") or data.get("status")
    if status and status != "NOT_FOUND" and not data.get("error"):
        info.append(f"Order status: {status}")
    delivery = data.get("estimated_delivery") or data.get("delivery_date")
    if delivery:
        info.append(f"Delivery: {display_date(delivery)}")
    if data.get("tracking_number"):
        info.append(f"Tracking: {data['tracking_number']}")
    product = data.get("product") or data.get("product_name")
    if product:
        info.append(f"Product: {product}")
    return info


def _orders_referenced(events: Iterable[CallEvent], extractor: OrderRefExtractor) -> List[str]:
    refs: List[str] = []
    for event in events:
        if event.event_type != EventType.QUERYING.value:
            continue
        try:
            found = extractor.extract(_data(event))
        except Exception:
            found = []
        for ref in found:
            if ref not in refs:
                refs.append(ref)
    return refs


def build_transcript(events: Iterable[CallEvent]) -> List[TranscriptTurn]:
    turns = []
    for event in dedupe_events(events):
        if event.event_type == EventType.USER_SPOKE.value:
            speaker = "user"
        elif event.event_type == EventType.AGENT_SPOKE.value:
            speaker = "agent"
        else:
            continue
        text = _data(event).get("text")
        if text is None:
            continue
        turns.append(TranscriptTurn(speaker=speaker, text=str(text), timestamp=event.created_at))
    return turns


def _describe_fields(data: Dict[str, Any]) -> str:
    parts = [f"{k}={v}" for k, v in data.items() if v is not None and not isinstance(v, (dict, list))]
    return ", ".join(parts)


def describe_event(event: CallEvent) -> Optional[AuditEntry]:
    """One human readable audit line for a known event type; None for unknown types."""
    etype = event.event_type
    if etype not in KNOWN_EVENT_TYPES:
        return None
    data = _data(event)
    flagged = False

    if etype == EventType.CALL_STARTED.value:
        description = "Call started"
    elif etype == EventType.USER_SPOKE.value:
        description = f'Customer said: "{data.get("text", "")}"'
    elif etype == EventType.AGENT_SPOKE.value:
        description = f'Agent said: "{data.get("text", "")}"'
    elif etype in (EventType.AGENT_THINKING.value, EventType.UNDERSTANDING.value):
        fields = _describe_fields(data)
        description = f"Agent analysed request ({fields})" if fields else "Agent analysed request"
    elif etype == EventType.COMPLIANCE_CHECK.value:
        if "allowed" in data:
            flagged = data.get("allowed") is False
            verdict = "Blocked" if flagged else "Allowed"
            description = f"{verdict}: {data.get('reason') or 'no reason recorded'}"
        else:
            check = str(data.get("check_type") or "compliance check").replace("_", " ")
            result = data.get("result") or ("VIP" if data.get("is_vip") else "recorded")
            description = f"Compliance check ({check}): {result}"
    elif etype == EventType.IDENTITY_VERIFICATION.value:
        method = str(data.get("method") or "unknown method").replace("_", " ")
        ok = verification_method(event) is not None
        description = f"{'Verified' if ok else 'Verification failed'} via {method}"
    elif etype == EventType.QUERYING.value:
        if data.get("sql"):
            description = f"Query: {' '.join(str(data['sql']).split())}"
        elif data.get("systems"):
            description = f"Queried systems: {', '.join(str(s) for s in data['systems'])}"
        else:
            fields = _describe_fields(data)
            description = f"Query ({fields})" if fields else "Query"
    elif etype == EventType.RESULTS.value:
        if data.get("status") == "NOT_FOUND" or data.get("error"):
            flagged = True
            description = f"Lookup failed: {data.get('error') or 'not found'}"
        else:
            description = f"Results: {json.dumps(data, sort_keys=True, default=str)}"
    elif etype == EventType.ACTION.value:
        lines = []
        for item in _action_items(data):
            kind = str(item.get("type") or "action")
            if kind in ESCALATION_ACTION_TYPES:
                flagged = True
            lines.append(f"{kind.upper()}: {item.get('description') or ''}".rstrip(": "))
        description = "; ".join(lines) or "ACTION"
    elif etype == EventType.SMS_SENT.value:
        description = (
            f"SMS to {data.get('recipient') or 'customer'} "
            f"({data.get('message_type') or 'message'}): {data.get('status') or 'unknown'}"
        )
    elif etype == EventType.SMS_PROMPT.value:
        description = f"Prompted customer to receive SMS ({data.get('message_type') or 'message'})"
    else:  # call_ended
        duration = data.get("duration")
        resolution = data.get("resolution") or "no resolution recorded"
        description = f"Call ended after {duration}s: {resolution}" if duration is not None else f"Call ended: {resolution}"

    return AuditEntry(id=event.id, event_type=etype, timestamp=event.created_at, description=description, flagged=flagged)


def build_audit_trail(events: Iterable[CallEvent], call_sid: Optional[str] = None) -> AuditTrail:
    events = dedupe_events(events)
    entries = [entry for entry in (describe_event(e) for e in events) if entry is not None]
    if call_sid is None and events:
        call_sid = events[0].call_sid
    return AuditTrail(call_sid=call_sid, blocked=is_blocked(events), entries=entries)


def summarize_session(
    events: Iterable[CallEvent],
    extractor: OrderRefExtractor = DEFAULT_ORDER_REF_EXTRACTOR,
) -> SessionSummary:
    events = dedupe_events(events)
    summary = SessionSummary()

    for event in events:
        data = _data(event)
        etype = event.event_type

        method = verification_method(event)
        if method is not None and not summary.customer_verified:
            summary.customer_verified = True
            summary.verification_method = method

        if etype == EventType.RESULTS.value:
            for line in _information_from_results(data):
                if line not in summary.information_provided:
                    summary.information_provided.append(line)
        elif etype == EventType.ACTION.value:
            for item in _action_items(data):
                if item.get("type") and item.get("description"):
                    summary.actions_performed.append(
                        ActionPerformed(type=str(item["type"]), description=str(item["description"]))
                    )
                if item.get("type") == "escalation":
                    summary.escalations_scheduled += 1

        if is_blocking_event(event):
            summary.compliance_blocked = True

    summary.orders_looked_up = _orders_referenced(events, extractor)
    return summary


def build_session_index(
    events_newest_first: Iterable[CallEvent],
    extractor: OrderRefExtractor = DEFAULT_ORDER_REF_EXTRACTOR,
) -> List[SessionIndexEntry]:
    groups: Dict[str, List[CallEvent]] = {}
    for event in dedupe_events(events_newest_first):
        groups.setdefault(event.call_sid, []).append(event)

    entries = []
    for call_sid, group in groups.items():
        if not group:
            continue
        ascending = sorted(group, key=lambda e: e.id)
        entries.append(
            SessionIndexEntry(
                call_sid=call_sid,
                started_at=ascending[0].created_at,
                event_count=len(ascending),
                verified=is_verified(ascending),
                orders_accessed=_orders_referenced(ascending, extractor),
                actions_taken=sum(1 for e in ascending if e.event_type == EventType.ACTION.value),
                compliance_blocked=is_blocked(ascending),
            )
        )
    entries.sort(key=lambda s: s.started_at, reverse=True)
    return entries


def format_duration(seconds: float) -> str:
    total = max(int(seconds or 0), 0)
    return f"{total // 60}:{total % 60:02d}"


def render_summary_notes(
    summary: SessionSummary,
    duration_seconds: float = 0,
    generated_at: Optional[datetime.datetime] = None,
) -> str:
    """Plain-text call notes suitable for pasting into a CRM."""
    generated_at = generated_at or datetime.datetime.now(datetime.timezone.utc)
    lines = [
        f"CALL SUMMARY - {generated_at.day} {generated_at:%B %Y, %H:%M}",
        f"Duration: {format_duration(duration_seconds)}",
        "",
        "--- VERIFICATION ---",
        f"Customer verified via {summary.verification_method}" if summary.customer_verified else "Customer not verified",
        "",
        "--- ORDERS ACCESSED ---",
    ]
    lines.extend([f"- {o}" for o in summary.orders_looked_up] or ["- None"])
    lines += ["", "--- INFORMATION PROVIDED ---"]
    lines.extend([f"- {i}" for i in summary.information_provided] or ["- None"])
    lines += ["", "--- ACTIONS TAKEN ---"]
    lines.extend([f"- {a.type.upper()}: {a.description}" for a in summary.actions_performed] or ["- None"])
    if summary.compliance_blocked:
        lines += ["", "COMPLIANCE: Medical inquiry escalated to clinician"]
    return "\n".join(lines)
