# aurix/core/simulator.py
"""
Scripted demo call.

`simulate_call` starts the call and plays the script; the HTTP route starts the
call itself (so lifecycle errors reach the caller) and schedules
`run_script_logged` in the background. The script replays
a delivery-delay conversation about order 417, paced by SIMULATION_PACE
(0 = instant).

`reset_demo_session` is the administrative reset used before a fresh demo run.
"""
import asyncio
from typing import List, Optional, Tuple

from aurix.config import get_settings
from aurix.core.errors import AurixError
from aurix.core.lifecycle import get_lifecycle_registry
from aurix.core.locks import workflow_locks
from aurix.core.workflows import SessionContext, end_call, log_event, start_call
from aurix.models.schemas import EventType
from aurix.storage import events_store
from aurix.utils.logging import get_logger

logger = get_logger("aurix.core.simulator")
settings = get_settings()

# (delay before the event in ms, event type, payload)
SCRIPT: List[Tuple[int, EventType, dict]] = [
    (1000, EventType.AGENT_SPOKE, {"text": "Hi, this is AURIX, your AI customer success assistant. How can I help you today?"}),
    (2000, EventType.USER_SPOKE, {"text": "Hi, I'm Tom and I'm calling about order 417"}),
    (1500, EventType.AGENT_THINKING, {"order_number": "417", "customer_name": "Tom", "issue_type": "order_status", "sentiment": "neutral"}),
    (1000, EventType.AGENT_SPOKE, {"text": "Hi Tom, I understand you're calling about order 417. Let me check our records for you. Please bear with me."}),
    (2500, EventType.USER_SPOKE, {"text": "My parcel was due to be delivered on Tuesday, but it hasn't arrived yet."}),
    (1000, EventType.AGENT_THINKING, {"issue_type": "delivery_delay", "expected_date": "Tuesday", "sentiment": "concerned"}),
    (1500, EventType.QUERYING, {"sql": "SELECT order_status, estimated_delivery, tracking_number FROM orders WHERE order_number = '417'"}),
    (800, EventType.RESULTS, {"order_status": "Rescheduled", "estimated_delivery": "2025-01-17", "tracking_number": "TRK789012"}),
    (1000, EventType.AGENT_SPOKE, {"text": "I've checked our database. Your parcel was rescheduled due to weather and will be delivered today. I can text you the tracking details if you'd like."}),
    (500, EventType.ACTION, {"type": "sms", "description": "Tracking details ready to send by SMS to +44 7700 900001", "status": "pending", "message_type": "tracking", "order_id": "ORD_7823", "tracking_number": "TRK789012"}),
    (300, EventType.ACTION, {"type": "crm_update", "description": "Interaction logged in CRM", "status": "complete"}),
]
DURATION = 45
RESOLUTION = "Informed customer of rescheduled delivery"


async def _wait(ms: int, pace: float) -> None:
    if pace > 0:
        await asyncio.sleep(ms / 1000 * pace)


async def run_script(ctx: SessionContext, pace: Optional[float] = None) -> None:
    pace = settings.SIMULATION_PACE if pace is None else pace
    logger.info("Simulating call %s (pace=%s)", ctx.call_sid, pace)
    async with workflow_locks.hold(ctx.call_sid):
        for delay, event_type, data in SCRIPT:
            await _wait(delay, pace)
            await log_event(ctx, event_type, dict(data))
    await _wait(500, pace)
    await end_call(ctx, duration=DURATION, resolution=RESOLUTION)
    logger.info("Simulation of %s finished", ctx.call_sid)


async def run_script_logged(ctx: SessionContext, pace: Optional[float] = None) -> None:
    """Background-task variant: failures are logged, there is no caller to raise to."""
    try:
        await run_script(ctx, pace)
    except AurixError:
        logger.exception("Simulation of %s aborted", ctx.call_sid)


async def simulate_call(call_sid: str, pace: Optional[float] = None) -> None:
    """Start the call and play the whole script."""
    ctx = SessionContext(call_sid)
    await start_call(ctx, source="simulation")
    await run_script(ctx, pace)


async def reset_demo_session(call_sid: Optional[str] = None) -> int:
    """Clear every event of the (demo) session and forget its lifecycle. Idempotent."""
    call_sid = call_sid or settings.DEMO_SESSION_ID
    async with workflow_locks.hold(call_sid):
        removed = await events_store.delete_by_session(call_sid)
    await get_lifecycle_registry().reset(call_sid)
    return removed
