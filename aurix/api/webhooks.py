# aurix/api/webhooks.py
"""
Voice platform webhooks.

Twilio posts form-encoded bodies and expects TwiML back; an event log outage
is answered with an apology and a hang up rather than a JSON 503.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Form, Header
from fastapi.responses import Response

from aurix.config import get_settings
from aurix.core import telephony
from aurix.core.errors import InvalidTransition, StoreUnavailable
from aurix.core.lifecycle import ACTIVE, get_lifecycle_registry
from aurix.core.orchestrator import process_speech
from aurix.core.workflows import SessionContext, end_call, new_call_sid, start_call
from aurix.models.schemas import ProcessSpeechRequest, WorkflowResult

logger = logging.getLogger("aurix.api.webhooks")
router = APIRouter()

settings = get_settings()

STORE_DOWN = "Sorry, we're having technical difficulties. Please call back shortly."
TERMINAL_STATUSES = {"completed", "busy", "failed", "no-answer", "canceled"}


def _twiml(xml: str) -> Response:
    return Response(content=xml, media_type="text/xml")


@router.post("/twilio/voice")
async def twilio_voice(
    call_sid: Optional[str] = Form(None, alias="CallSid"),
    x_twilio_callsid: Optional[str] = Header(None),
):
    """Inbound call: open the session and hand the audio to the agent (or gather speech ourselves)."""
    call_sid = call_sid or x_twilio_callsid or new_call_sid()
    logger.info("Incoming call %s", call_sid)
    try:
        await start_call(SessionContext(call_sid), source="twilio")
    except StoreUnavailable:
        return _twiml(telephony.say_and_hangup(STORE_DOWN))
    except InvalidTransition:
        logger.info("Call %s already finished; hanging up", call_sid)
        return _twiml(telephony.say_and_hangup("Thanks for calling. Goodbye."))

    if settings.ELEVENLABS_AGENT_ID:
        return _twiml(telephony.connect_stream(call_sid, settings.ELEVENLABS_AGENT_ID))
    return _twiml(telephony.speak_and_gather(telephony.GREETING))


@router.post("/twilio/process")
async def twilio_process(
    call_sid: Optional[str] = Form(None, alias="CallSid"),
    speech: Optional[str] = Form(None, alias="SpeechResult"),
):
    """One speech turn from <Gather>."""
    if not call_sid:
        return _twiml(telephony.say_and_hangup("System configuration error."))
    if not speech:
        return _twiml(telephony.speak_and_gather("I didn't hear anything. How can I help you today?"))
    logger.info("Call %s said %r", call_sid, speech)
    try:
        result = await process_speech(SessionContext(call_sid), speech)
    except StoreUnavailable:
        return _twiml(telephony.say_and_hangup(STORE_DOWN))
    return _twiml(telephony.speak_and_gather(result.response))


@router.post("/twilio/status")
async def twilio_status(
    call_sid: Optional[str] = Form(None, alias="CallSid"),
    call_status: Optional[str] = Form(None, alias="CallStatus"),
    call_duration: Optional[float] = Form(None, alias="CallDuration"),
):
    """Status callback. A terminal status while the call is active counts as the disconnect signal."""
    if not call_sid or (call_status or "").lower() not in TERMINAL_STATUSES:
        return {"status": "ignored"}
    lc = await get_lifecycle_registry().peek(call_sid)
    if lc.state != ACTIVE:
        return {"status": "ignored", "state": lc.state}
    result = await end_call(SessionContext(call_sid), duration=call_duration or 0, resolution="caller_disconnected")
    return {"status": "ended", "state": result.data.get("state")}


@router.post("/process-speech", response_model=WorkflowResult)
async def process_speech_webhook(payload: ProcessSpeechRequest):
    """JSON variant of a speech turn, used by the conversational agent's server tools."""
    ctx = SessionContext(payload.call_sid or "")
    return await process_speech(ctx, payload.user_speech)
