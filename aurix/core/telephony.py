# aurix/core/telephony.py
"""
TwiML builders for the voice webhooks.

Exposes:
 - speak_and_gather(text, action) -> str
 - say_and_hangup(text) -> str
 - connect_stream(call_sid, agent_id) -> str
"""
from typing import Optional

from twilio.twiml.voice_response import Connect, VoiceResponse

PROCESS_ACTION = "/webhook/twilio/process"
VOICE_ACTION = "/webhook/twilio/voice"
STREAM_URL = "wss://api.elevenlabs.io/v1/convai/conversation?agent_id={agent_id}"
GREETING = "Hi, thanks for calling. How can I help you today?"


def speak_and_gather(text: str, action: str = PROCESS_ACTION) -> str:
    """Say `text` while listening for the caller's next utterance."""
    response = VoiceResponse()
    gather = response.gather(input="speech", action=action, speech_timeout="auto")
    gather.say(text)
    # reached only if the caller stays silent
    response.say("Are you still there?")
    response.redirect(VOICE_ACTION)
    return str(response)


def say_and_hangup(text: str) -> str:
    response = VoiceResponse()
    response.say(text)
    response.hangup()
    return str(response)


def connect_stream(call_sid: str, agent_id: Optional[str]) -> str:
    """Hand the call's media to the conversational agent; hang up if none is configured."""
    if not agent_id:
        return say_and_hangup("System configuration error.")
    response = VoiceResponse()
    connect = Connect()
    stream = connect.stream(url=STREAM_URL.format(agent_id=agent_id))
    stream.parameter(name="callSid", value=call_sid)
    response.append(connect)
    return str(response)
