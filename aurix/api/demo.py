# aurix/api/demo.py
"""Demo controls: scripted call simulation and the demo session reset."""
import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks

from aurix.config import get_settings
from aurix.core.simulator import reset_demo_session, run_script_logged
from aurix.core.workflows import SessionContext, start_call
from aurix.models.schemas import SimulateCallRequest

logger = logging.getLogger("aurix.api.demo")
router = APIRouter()

settings = get_settings()


@router.post("/simulate-call")
async def simulate_call(payload: SimulateCallRequest, background_tasks: BackgroundTasks):
    """
    Start a scripted call and play it in the background.
    The call is started before responding so a session stuck in
    `summarizing` is reported as a 409 instead of failing silently.
    """
    ctx = SessionContext(payload.call_sid or "")
    started = await start_call(ctx, source="simulation")
    background_tasks.add_task(run_script_logged, ctx)
    logger.info("Simulation scheduled for %s", ctx.call_sid)
    return {"status": "simulation_started", "call_sid": ctx.call_sid, "state": started.data.get("state")}


@router.post("/demo/reset")
async def reset_demo(call_sid: Optional[str] = None):
    """Wipe the demo session (or the one named) so a fresh run starts clean."""
    call_sid = call_sid or settings.DEMO_SESSION_ID
    removed = await reset_demo_session(call_sid)
    return {"status": "ok", "call_sid": call_sid, "events_deleted": removed}
