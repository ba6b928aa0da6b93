# aurix/utils/security.py
"""
Webhook signing / verification helpers.

Provides:
 - sign_payload(payload_bytes, secret) -> signature (hex)
 - verify_signature(payload_bytes, signature, secret) -> bool
 - verify_twilio_signature(url, params, signature) -> bool
 - verify_webhook: FastAPI dependency checking X-Webhook-Secret,
   X-Webhook-Signature (HMAC-SHA256 of the body) and X-Twilio-Signature

Any header that is present must match. In dev all three are optional; in
any other ENV a request carrying none of them is rejected with 401.
"""
import hashlib
import hmac
import logging
from typing import Optional, Union

from fastapi import Header, HTTPException, Request
from twilio.request_validator import RequestValidator

from aurix.config import get_settings

logger = logging.getLogger("aurix.utils.security")
settings = get_settings()


def sign_payload(payload: Union[bytes, str], secret: Optional[str] = None) -> str:
    """
    Return hex HMAC-SHA256 signature for payload.
    """
    if secret is None:
        secret = settings.WEBHOOK_SECRET or ""
    if isinstance(payload, str):
        payload = payload.encode("utf-8")
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify_signature(payload: Union[bytes, str], signature: str, secret: Optional[str] = None) -> bool:
    """
    Verify signature (hex string) for payload. Uses constant-time compare.
    """
    expected = sign_payload(payload, secret)
    return hmac.compare_digest(expected, signature or "")


def verify_twilio_signature(url: str, params: dict, signature: Optional[str]) -> bool:
    """Check Twilio's X-Twilio-Signature against the auth token."""
    if not settings.TWILIO_AUTH_TOKEN or not signature:
        return False
    return RequestValidator(settings.TWILIO_AUTH_TOKEN).validate(url, params, signature)


async def verify_webhook(
    request: Request,
    x_webhook_secret: Optional[str] = Header(None),
    x_webhook_signature: Optional[str] = Header(None),
    x_twilio_signature: Optional[str] = Header(None),
) -> None:
    if not settings.WEBHOOK_SECRET:
        return
    if x_webhook_secret is not None and not hmac.compare_digest(x_webhook_secret, settings.WEBHOOK_SECRET):
        logger.warning("Webhook secret mismatch on %s", request.url.path)
        raise HTTPException(status_code=403, detail="Invalid webhook secret")
    if x_webhook_signature is not None:
        body = await request.body()
        if not verify_signature(body, x_webhook_signature):
            logger.warning("Webhook signature mismatch on %s", request.url.path)
            raise HTTPException(status_code=403, detail="Invalid webhook signature")
    if x_twilio_signature is not None:
        # Twilio signs the public URL it called, not the one we see behind a proxy
        url = settings.PUBLIC_BASE_URL.rstrip("/") + request.url.path
        if request.url.query:
            url = f"{url}?{request.url.query}"
        params = dict(await request.form())
        if not verify_twilio_signature(url, params, x_twilio_signature):
            logger.warning("Twilio signature mismatch on %s", request.url.path)
            raise HTTPException(status_code=403, detail="Invalid Twilio signature")
    if settings.ENV != "dev" and x_webhook_secret is None and x_webhook_signature is None and x_twilio_signature is None:
        logger.warning("Unauthenticated webhook call on %s", request.url.path)
        raise HTTPException(status_code=401, detail="Webhook authentication required")
