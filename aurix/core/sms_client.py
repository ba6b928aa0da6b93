# aurix/core/sms_client.py
"""
Outbound SMS via Twilio.

When TWILIO_ACCOUNT_SID / TWILIO_AUTH_TOKEN / TWILIO_PHONE_NUMBER are not all
set, messages are simulated: nothing leaves the process and a `SIM_<ms>` id
is returned so demos keep working.

Exposes:
 - build_message(message_type, order_id=None, tracking_number=None) -> str
 - SMSClient.send(to, body) -> SMSReceipt
 - get_sms_client()
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional

from aurix.config import get_settings
from aurix.core.errors import DownstreamUnavailable

logger = logging.getLogger("aurix.core.sms")
settings = get_settings()

MESSAGE_TYPES = ("tracking", "verification", "payment_link", "other")


@dataclass
class SMSReceipt:
    message_sid: str
    status: str  # delivered | simulated
    body: str

    @property
    def simulated(self) -> bool:
        return self.status == "simulated"


def build_message(message_type: str, order_id: Optional[str] = None, tracking_number: Optional[str] = None) -> str:
    brand = settings.SMS_BRAND
    if message_type == "tracking":
        return f"{brand}: Your order {order_id} is on its way! Track it here: https://track.demo/{tracking_number}"
    if message_type == "verification":
        return f"{brand}: Your verification code is: 123456"
    if message_type == "payment_link":
        return f"{brand}: Update your payment method securely: https://pay.demo/update"
    return f"{brand}: This is a demonstration SMS from your customer service agent."


def preview(body: str, length: int = 50) -> str:
    return body[:length] + "..."


class SMSClient:
    def __init__(self, settings):
        self.sender = settings.TWILIO_PHONE_NUMBER
        self._client = None
        if settings.TWILIO_ACCOUNT_SID and settings.TWILIO_AUTH_TOKEN and settings.TWILIO_PHONE_NUMBER:
            from twilio.rest import Client

            self._client = Client(settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN)

    @property
    def configured(self) -> bool:
        return self._client is not None

    async def send(self, to: str, body: str) -> SMSReceipt:
        if not to:
            raise DownstreamUnavailable("sms", "no recipient number")
        if not self.configured:
            logger.info("Twilio not configured - simulating SMS to %s", to)
            return SMSReceipt(message_sid=f"SIM_{int(time.time() * 1000)}", status="simulated", body=body)

        loop = asyncio.get_running_loop()
        try:
            message = await loop.run_in_executor(None, self._blocking_send, to, body)
        except Exception as exc:
            logger.exception("Twilio send to %s failed", to)
            raise DownstreamUnavailable("sms", str(exc)) from exc
        logger.info("SMS sent to %s (%s)", to, message.sid)
        return SMSReceipt(message_sid=message.sid, status="delivered", body=body)

    def _blocking_send(self, to: str, body: str):
        return self._client.messages.create(to=to, from_=self.sender, body=body)


_sms_client: Optional[SMSClient] = None


def get_sms_client() -> SMSClient:
    global _sms_client
    if _sms_client is None:
        _sms_client = SMSClient(settings)
    return _sms_client
