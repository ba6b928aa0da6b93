# aurix/core/workflows.py
"""
Per-interaction workflows.

Each workflow is a fixed script of timeline appends interleaved with lookups
and side effects:

    understanding/agent_thinking -> compliance_check (when a rule applies)
      -> querying -> lookup -> results -> action(s) -> agent_spoke

Lookups that fail are still logged (a NOT_FOUND `results` event) and turned
into a friendly reply; downstream outages degrade to an apology. Only
StoreUnavailable escapes, because without the event log nothing else holds.

All workflows take an explicit SessionContext and run under the session's
workflow lock, so two invocations for one call never interleave.

Exposes:
 - SessionContext
 - lookup_order, request_refill, update_address, book_callback,
   handle_inquiry, send_sms, start_call, end_call, dismiss_session
"""
import asyncio
import datetime
import functools
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from aurix.config import get_settings
from aurix.core import compliance
from aurix.core.errors import ComplianceBlocked, DownstreamUnavailable, LookupNotFound, ValidationError
from aurix.core.lifecycle import ACTIVE, get_lifecycle_registry
from aurix.core.locks import workflow_locks
from aurix.core.projections import display_date, render_summary_notes, summarize_session
from aurix.core.sms_client import MESSAGE_TYPES, build_message, get_sms_client, preview
from aurix.models.schemas import EventType, WorkflowResult
from aurix.storage import escalations_store, events_store, records_store

logger = logging.getLogger("aurix.core.workflows")
settings = get_settings()

APOLOGY = "I'm sorry, I'm having trouble accessing that information right now. Could you try again in a moment?"
VERIFICATION_CODE = "123456"
ADDRESS_TYPES = ("home", "office")
_PHONE = re.compile(r"^\+?[1-9]\d{7,14}$")


@dataclass
class SessionContext:
    """Which call a workflow writes to. `customer_id` is filled in once resolved."""

    call_sid: str
    customer_id: Optional[str] = None

    def __post_init__(self):
        if not self.call_sid or not str(self.call_sid).strip():
            raise ValidationError("call_sid is required", field="call_sid")
        self.call_sid = str(self.call_sid).strip()


def new_call_sid() -> str:
    return f"CALL_{int(time.time() * 1000)}"


async def pause(factor: float = 1.0) -> None:
    delay = settings.WORKFLOW_STEP_DELAY * factor
    if delay > 0:
        await asyncio.sleep(delay)


async def log_event(ctx: SessionContext, event_type: EventType, data: Dict[str, Any]):
    return await events_store.append_event(ctx.call_sid, event_type, data, customer_id=ctx.customer_id)


async def reply(ctx: SessionContext, text: str, ok: bool = True, reason: Optional[str] = None, **data) -> WorkflowResult:
    await log_event(ctx, EventType.AGENT_SPOKE, {"text": text})
    return WorkflowResult(call_sid=ctx.call_sid, ok=ok, reason=reason, response=text, data=data)


async def log_not_found(ctx: SessionContext, error: str, suggestion: str, **extra) -> None:
    await log_event(ctx, EventType.RESULTS, {**extra, "status": "NOT_FOUND", "error": error, "suggestion": suggestion})


def workflow(fn):
    """Run under the session's workflow lock; degrade downstream outages to an apology."""

    @functools.wraps(fn)
    async def run(ctx: SessionContext, *args, **kwargs) -> WorkflowResult:
        async with workflow_locks.hold(ctx.call_sid):
            try:
                return await fn(ctx, *args, **kwargs)
            except DownstreamUnavailable as exc:
                logger.warning("%s degraded for %s: %s", fn.__name__, ctx.call_sid, exc)
                await log_event(ctx, EventType.RESULTS, {"status": "UNAVAILABLE", "error": "Service temporarily unavailable"})
                return await reply(ctx, APOLOGY, ok=False, reason=exc.code)
            except LookupNotFound as exc:
                logger.info("%s: unexpected missing %s for %s", fn.__name__, exc.entity, ctx.call_sid)
                await log_not_found(ctx, f"{exc.entity.capitalize()} not found", "Verify the details provided")
                return await reply(ctx, "I couldn't find that in our records. Could you double-check the details for me?", ok=False, reason=exc.code)

    return run


def require(value: Optional[str], field: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required", field=field)
    return str(value).strip()


# --- order lookup ---


@workflow
async def lookup_order(ctx: SessionContext, order_number: str, customer_name: Optional[str] = None) -> WorkflowResult:
    order_number = require(order_number, "order_number").lstrip("#")
    await log_event(
        ctx,
        EventType.AGENT_THINKING,
        {"order_number": order_number, "customer_name": customer_name or "Customer", "issue_type": "order_status"},
    )
    await pause()

    await log_event(
        ctx,
        EventType.QUERYING,
        {
            "order_number": order_number,
            "sql": f"SELECT order_status, estimated_delivery, tracking_number FROM orders WHERE order_number = '{order_number}'",
        },
    )
    await pause()

    try:
        order = await records_store.get_order_by_number(order_number)
    except LookupNotFound:
        await log_not_found(ctx, "Order not found", "Verify the order number", order_number=order_number)
        return await reply(
            ctx,
            f"I couldn't find an order with number {order_number}. Could you please verify the order number?",
            ok=False,
            reason=LookupNotFound.code,
            order_number=order_number,
        )

    ctx.customer_id = ctx.customer_id or order.get("customer_id")
    facts = {
        "order_id": order["order_id"],
        "order_number": order.get("order_number"),
        "order_status": order.get("order_status"),
        "estimated_delivery": order.get("estimated_delivery"),
        "tracking_number": order.get("tracking_number"),
        "product_name": order.get("product_name"),
    }
    await log_event(ctx, EventType.RESULTS, facts)
    await pause()

    if order.get("tracking_number"):
        await log_event(
            ctx,
            EventType.ACTION,
            {
                "type": "sms",
                "description": f"Tracking number {order['tracking_number']} ready to send by SMS",
                "status": "pending",
                "message_type": "tracking",
                "order_id": order["order_id"],
                "tracking_number": order["tracking_number"],
            },
        )

    notes = f"{order['notes']}. " if order.get("notes") else ""
    text = (
        f"Your order {order_number} is currently {order.get('order_status')}. {notes}"
        f"Expected delivery: {display_date(order.get('estimated_delivery'))}. "
        f"Tracking number: {order.get('tracking_number')}."
    )
    return await reply(ctx, text, **facts, notes=order.get("notes"))


# --- prescription refill ---


@workflow
async def request_refill(
    ctx: SessionContext,
    customer_phone: str,
    prescription_id: str,
    verification_last4: Optional[str] = None,
) -> WorkflowResult:
    prescription_id = require(prescription_id, "prescription_id")
    await log_event(
        ctx,
        EventType.UNDERSTANDING,
        {"request_type": "prescription_refill", "prescription_id": prescription_id, "verification_required": True},
    )
    await pause()

    await log_event(
        ctx,
        EventType.QUERYING,
        {"query_type": "customer_by_phone", "sql": "SELECT customer_id, security_last4_digits, vip_tier FROM customers WHERE phone = :phone"},
    )
    try:
        customer = await records_store.get_customer_by_phone(customer_phone)
    except LookupNotFound:
        await log_not_found(ctx, "Customer not found", "Verify the phone number on the account")
        return await reply(
            ctx,
            "I couldn't find your account. Could you please verify your phone number?",
            ok=False,
            reason=LookupNotFound.code,
        )
    ctx.customer_id = customer["customer_id"]

    passed = bool(verification_last4) and customer.get("security_last4_digits") == str(verification_last4).strip()
    await log_event(
        ctx,
        EventType.COMPLIANCE_CHECK,
        {
            "check_type": "identity_verification",
            "method": "last_4_digits",
            "result": "PASSED" if passed else "FAILED",
            "allowed": passed,
            "reason": "Identity verified" if passed else "Identity verification failed",
            "hipaa_required": True,
        },
    )
    await pause()

    if not passed:
        await log_event(
            ctx,
            EventType.ACTION,
            {"type": "escalation", "description": "Identity not verified - routed to support team for manual verification"},
        )
        return await reply(
            ctx,
            "I'm sorry, that doesn't match our records. For your security, I'll need to verify your identity "
            "another way. Let me connect you with our support team.",
            ok=False,
            reason="verification_failed",
        )

    await log_event(
        ctx,
        EventType.QUERYING,
        {
            "systems": ["prescription_system", "billing_system"],
            "queries": [
                f"SELECT prescription_status, refills_remaining FROM prescriptions WHERE prescription_id = '{prescription_id}'",
                f"SELECT card_last4, next_billing_date FROM billing WHERE customer_id = '{customer['customer_id']}'",
            ],
        },
    )
    await pause(1.6)

    try:
        rx = await records_store.get_prescription(prescription_id)
        if rx.get("customer_id") and rx["customer_id"] != customer["customer_id"]:
            raise LookupNotFound("prescription", prescription_id)
    except LookupNotFound:
        await log_not_found(ctx, "Prescription not found", "Check the prescription ID", prescription_id=prescription_id)
        return await reply(
            ctx,
            "I couldn't find that prescription in our system. Would you like me to check under a different prescription ID?",
            ok=False,
            reason=LookupNotFound.code,
        )

    try:
        billing = await records_store.get_billing(customer["customer_id"])
    except LookupNotFound:
        billing = {}

    refills = rx.get("refills_remaining") or 0
    await log_event(
        ctx,
        EventType.RESULTS,
        {
            "prescription_status": rx.get("prescription_status"),
            "refills_remaining": refills,
            "product": rx.get("product_name"),
            "billing_status": billing.get("billing_status"),
            "next_billing_date": billing.get("next_billing_date"),
            "customer_tier": customer.get("vip_tier"),
        },
    )
    await pause()

    if refills <= 0:
        return await reply(
            ctx,
            "I can see your prescription has no refills remaining. I can connect you with our team to get a new "
            "prescription from your doctor. Would you like me to do that?",
            ok=False,
            reason="no_refills_remaining",
            refills_remaining=0,
        )

    gold = customer.get("vip_tier") == "gold"
    eta = datetime.date.today() + datetime.timedelta(days=2 if gold else 3)
    order_id = f"ORD_{int(time.time() * 1000)}"
    await records_store.create_order(
        {
            "order_id": order_id,
            "customer_id": customer["customer_id"],
            "prescription_id": rx["prescription_id"],
            "product_name": rx.get("product_name"),
            "quantity": 30,
            "order_status": "processing",
            "order_date": datetime.date.today().isoformat(),
            "estimated_delivery": eta.isoformat(),
            "discreet_packaging": bool(customer.get("discreet_packaging")),
            "order_total": 65.00,
        }
    )
    remaining = await records_store.decrement_refills(rx["prescription_id"])

    await log_event(
        ctx,
        EventType.ACTION,
        {
            "type": "order_created",
            "order_id": order_id,
            "description": f"Refill order created: {rx.get('product_name')}",
            "shipping": "Express (free)" if gold else "Standard",
            "payment_method": f"Card ending {billing.get('card_last4')}" if billing.get("card_last4") else None,
        },
    )

    vip_note = "As a Gold member, you get free express shipping - " if gold else ""
    text = (
        f"Perfect, I've processed your refill for {rx.get('product_name')}. {vip_note}"
        f"It will arrive on {display_date(eta.isoformat())}. You have {remaining} refills remaining after this order. "
        "Is there anything else I can help with?"
    )
    return await reply(
        ctx,
        text,
        order_id=order_id,
        estimated_delivery=eta.isoformat(),
        refills_remaining=remaining,
        shipping_type="express" if gold else "standard",
    )


# --- delivery address change ---


def is_vip(customer: Dict[str, Any]) -> bool:
    return (customer.get("customer_ltv") or 0) > 1000 or customer.get("vip_tier") == "gold"


@workflow
async def update_address(
    ctx: SessionContext,
    customer_phone: str,
    order_id: str,
    new_address_type: str,
    verification_code: Optional[str] = None,
) -> WorkflowResult:
    order_id = require(order_id, "order_id")
    new_address_type = require(new_address_type, "new_address_type").lower()
    if new_address_type not in ADDRESS_TYPES:
        raise ValidationError("new_address_type must be 'home' or 'office'", field="new_address_type")

    await log_event(
        ctx,
        EventType.UNDERSTANDING,
        {"request_type": "address_change", "order_id": order_id, "requested_address": new_address_type, "reason": "privacy_concern"},
    )
    await pause()

    await log_event(
        ctx,
        EventType.QUERYING,
        {"order_id": order_id, "sql": f"SELECT * FROM orders WHERE order_id = '{order_id}'"},
    )
    try:
        customer = await records_store.get_customer_by_phone(customer_phone)
    except LookupNotFound:
        await log_not_found(ctx, "Customer not found", "Verify the phone number on the account")
        return await reply(
            ctx,
            "I couldn't find your account. Could you please verify your phone number?",
            ok=False,
            reason=LookupNotFound.code,
        )
    ctx.customer_id = customer["customer_id"]
    try:
        order = await records_store.get_order(order_id, customer_id=customer["customer_id"])
    except LookupNotFound:
        await log_not_found(ctx, "Order not found for this customer", "Verify the order number", order_id=order_id)
        return await reply(
            ctx,
            "I couldn't find that order under your account. Could you please verify the order number?",
            ok=False,
            reason=LookupNotFound.code,
        )
    await pause()

    vip = is_vip(customer)
    await log_event(
        ctx,
        EventType.COMPLIANCE_CHECK,
        {
            "check_type": "vip_customer_detection",
            "customer_ltv": customer.get("customer_ltv"),
            "order_count": customer.get("order_count"),
            "vip_tier": customer.get("vip_tier"),
            "is_vip": vip,
            "allowed": True,
            "reason": "VIP customer - empathetic response, priority processing" if vip else "Standard processing",
        },
    )
    await pause()

    # without a code the SMS step is simulated and passes
    verified = not verification_code or str(verification_code).strip() == VERIFICATION_CODE
    await log_event(
        ctx,
        EventType.IDENTITY_VERIFICATION,
        {"method": "sms_code", "verified": verified, "compliance": "PASSED" if verified else "FAILED"},
    )
    if not verified:
        await log_event(
            ctx,
            EventType.COMPLIANCE_CHECK,
            {"check_type": "security_verification", "allowed": False, "reason": "Security code did not match"},
        )
        await log_event(
            ctx,
            EventType.ACTION,
            {"type": "escalation", "description": "Security verification failed - routed to support team"},
        )
        return await reply(
            ctx,
            "I'm sorry, that code doesn't match. For your security I'll pass this to our support team, "
            "who can verify your identity and make the change.",
            ok=False,
            reason="verification_failed",
        )
    await pause()

    await records_store.update_order_address(order_id, new_address_type)
    await log_event(
        ctx,
        EventType.RESULTS,
        {
            "address_updated": True,
            "new_address_type": new_address_type,
            "discreet_packaging_confirmed": True,
            "delivery_date_unchanged": order.get("estimated_delivery"),
        },
    )
    await pause()

    await log_event(
        ctx,
        EventType.ACTION,
        {
            "type": "address_change",
            "description": f"Delivery address changed: {order.get('delivery_address_type')} -> {new_address_type}",
        },
    )
    if vip:
        await log_event(
            ctx,
            EventType.ACTION,
            {
                "type": "vip_alert",
                "description": "VIP customer support team notified (relationship management)",
                "customer_tier": customer.get("vip_tier"),
                "customer_ltv": customer.get("customer_ltv"),
            },
        )
    await log_event(
        ctx,
        EventType.ACTION,
        {"type": "privacy_update", "description": "Customer privacy preferences noted in CRM", "privacy_flag": "high"},
    )

    arrival = display_date(order.get("estimated_delivery"))
    if vip:
        gold_note = "As a Gold member, you still have free delivery and " if customer.get("vip_tier") == "gold" else ""
        text = (
            f"Absolutely, I've updated your delivery address to {new_address_type} and confirmed discreet packaging - "
            f"plain brown box, no branding. {gold_note}your order will still arrive on {arrival}. I've also updated "
            f"your preferences so future orders automatically go to your {new_address_type} address. "
            "Is there anything else I can help with?"
        )
    else:
        text = (
            f"I've updated your delivery address to {new_address_type}. Your order will arrive in discreet packaging "
            f"on {arrival}. Would you like me to update your default delivery preference as well?"
        )
    return await reply(
        ctx,
        text,
        order_id=order_id,
        new_address_type=new_address_type,
        estimated_delivery=order.get("estimated_delivery"),
        discreet_packaging_confirmed=True,
        is_vip=vip,
    )


# --- clinician callback ---


@workflow
async def book_callback(
    ctx: SessionContext,
    customer_id: Optional[str] = None,
    customer_name: Optional[str] = None,
    callback_reason: Optional[str] = None,
    preferred_time: Optional[str] = None,
    phone_number: Optional[str] = None,
    notes: Optional[str] = None,
) -> WorkflowResult:
    if customer_id:
        ctx.customer_id = customer_id
    reason = callback_reason or "Medical inquiry"
    window = preferred_time or f"{settings.CALLBACK_WINDOW_HOURS:g} hours"

    await log_event(
        ctx,
        EventType.UNDERSTANDING,
        {"request_type": "clinician_callback", "customer_name": customer_name, "callback_reason": reason, "preferred_time": window},
    )
    await pause(0.6)

    await log_event(ctx, EventType.QUERYING, {"query_type": "pending_escalation", "call_sid": ctx.call_sid})
    escalation = await escalations_store.schedule_callback(ctx.call_sid, customer_id=customer_id)
    await log_event(
        ctx,
        EventType.RESULTS,
        {
            "escalation_updated": escalation is not None,
            "escalation_id": escalation.id if escalation else None,
            "callback_scheduled_at": escalation.callback_scheduled_at if escalation else None,
        },
    )
    if escalation is None:
        logger.info("No pending escalation for %s; callback booked without one", ctx.call_sid)

    await log_event(
        ctx,
        EventType.ACTION,
        {
            "type": "clinician_callback_booked",
            "description": "Customer accepted clinician callback - Scheduled",
            "reason": reason,
            "preferred_time": preferred_time or f"within {window}",
            "callback_number": phone_number,
            "status": "SCHEDULED",
        },
    )
    await pause(0.6)

    if customer_id:
        note = f"Clinician callback scheduled - Reason: {reason}"
        if notes:
            note = f"{note} ({notes})"
        try:
            await records_store.append_customer_note(customer_id, note)
        except LookupNotFound:
            logger.warning("Cannot add callback note: customer %s not found", customer_id)
        else:
            await log_event(
                ctx,
                EventType.ACTION,
                {"type": "customer_notes_updated", "description": "Added callback request to customer record", "note": note},
            )

    text = (
        f"I've scheduled a callback from one of our clinicians within the next {window}. They'll call you on the "
        "number we have on file to discuss your question. Is there anything else I can help you with today?"
    )
    return await reply(
        ctx,
        text,
        callback_scheduled=True,
        scheduled_within=window,
        escalation_id=escalation.id if escalation else None,
        escalation_updated=escalation is not None,
    )


# --- general inquiry ---


@workflow
async def handle_inquiry(
    ctx: SessionContext,
    inquiry_type: str,
    order_id: Optional[str] = None,
    customer_phone: Optional[str] = None,
    question_text: Optional[str] = None,
    policy: compliance.CompliancePolicy = compliance.default_policy,
) -> WorkflowResult:
    inquiry_type = require(inquiry_type, "inquiry_type")
    await log_event(
        ctx,
        EventType.UNDERSTANDING,
        {"inquiry_type": inquiry_type, "order_id": order_id, "question_text": (question_text or "")[:100] or None},
    )
    await pause()

    try:
        decision = policy.enforce(inquiry_type)
    except ComplianceBlocked as blocked:
        await log_event(
            ctx,
            EventType.COMPLIANCE_CHECK,
            {"inquiry_type": inquiry_type, "allowed": False, "reason": blocked.reason, "action": blocked.action},
        )
        await pause()
        return await _offer_clinician(ctx, blocked, question_text)

    await log_event(ctx, EventType.COMPLIANCE_CHECK, decision.as_event_data(inquiry_type))
    await pause()

    await log_event(
        ctx,
        EventType.QUERYING,
        {
            "order_id": order_id,
            "sql": (
                "SELECT o.*, c.*, p.* FROM orders o JOIN customers c ON o.customer_id = c.customer_id "
                f"JOIN prescriptions p ON o.prescription_id = p.prescription_id WHERE o.order_id = '{order_id}'"
            ),
        },
    )
    await pause(1.6)

    try:
        if not order_id:
            raise LookupNotFound("order", order_id)
        order = await records_store.get_order_details(order_id)
    except LookupNotFound:
        await log_not_found(
            ctx, "Order not found in database", "Verify order number format (ORD_XXXX)", order_id=order_id
        )
        await pause(0.6)
        await log_event(
            ctx,
            EventType.ACTION,
            {
                "type": "customer_assistance",
                "description": "Offering alternative lookup methods",
                "options": ["Search by phone number", "Search by email", "Recent orders"],
            },
        )
        return await reply(
            ctx,
            f"I couldn't find an order with ID {order_id}. Let me help you - could you provide your phone number or "
            "email address so I can look up your recent orders? Alternatively, order numbers are usually in the "
            "format ORD followed by 4 digits, like ORD-7823.",
            ok=False,
            reason=LookupNotFound.code,
            found=False,
            order_id=order_id,
        )

    customer = order.get("customer") or {}
    ctx.customer_id = ctx.customer_id or order.get("customer_id")
    await log_event(
        ctx,
        EventType.RESULTS,
        {
            "order_status": order.get("order_status"),
            "estimated_delivery": order.get("estimated_delivery"),
            "tracking_number": order.get("tracking_number"),
            "product": order.get("product_name"),
            "customer_tier": customer.get("vip_tier"),
            "discreet_packaging": bool(order.get("discreet_packaging")),
        },
    )
    await pause()

    await log_event(
        ctx,
        EventType.ACTION,
        {
            "type": "sms",
            "description": f"Tracking link {order.get('tracking_number')} ready to send by SMS",
            "status": "pending",
            "recipient": customer_phone or customer.get("phone"),
            "message_type": "tracking",
            "order_id": order["order_id"],
            "tracking_number": order.get("tracking_number"),
        },
    )

    discreet = " As always, it will arrive in plain, discreet packaging." if order.get("discreet_packaging") else ""
    text = (
        f"Your {order.get('product_name')} order is {order.get('order_status')} and will arrive on "
        f"{display_date(order.get('estimated_delivery'))}. I can text you a tracking link if you'd like.{discreet}"
    )
    return await reply(
        ctx,
        text,
        allowed=True,
        order_status=order.get("order_status"),
        estimated_delivery=order.get("estimated_delivery"),
        tracking_number=order.get("tracking_number"),
        product_name=order.get("product_name"),
        discreet_packaging=bool(order.get("discreet_packaging")),
    )


async def _offer_clinician(ctx: SessionContext, blocked: ComplianceBlocked, question_text: Optional[str]) -> WorkflowResult:
    hours = f"{settings.CALLBACK_WINDOW_HOURS:g} hours"
    text = (
        "I want to make sure you get accurate medical information, so I can arrange a callback from one of our "
        f"clinicians within the next {hours}. They'll be able to discuss any concerns you have about the medication. "
        "Would you like me to book that for you?"
    )
    escalation = await escalations_store.create_escalation(
        ctx.call_sid,
        inquiry_type=blocked.inquiry_type,
        blocked_reason=blocked.reason,
        customer_id=ctx.customer_id,
        inquiry_text=question_text,
        agent_response=text,
    )
    await log_event(
        ctx,
        EventType.ACTION,
        {
            "type": "escalation",
            "description": "Clinician callback offered (medical advice boundary)",
            "escalation_id": escalation.id,
            "scheduled_within": hours,
        },
    )
    return await reply(
        ctx,
        text,
        ok=False,
        reason=blocked.code,
        allowed=False,
        blocked_reason=blocked.reason,
        escalation_id=escalation.id,
    )


# --- SMS ---


@workflow
async def send_sms(
    ctx: SessionContext,
    recipient_phone: str,
    message_type: str = "other",
    order_id: Optional[str] = None,
    tracking_number: Optional[str] = None,
) -> WorkflowResult:
    recipient = require(recipient_phone, "recipient_phone").replace(" ", "")
    if not _PHONE.match(recipient):
        raise ValidationError("recipient_phone must be a valid phone number (e.g. +447123456789)", field="recipient_phone")
    if message_type not in MESSAGE_TYPES:
        message_type = "other"

    body = build_message(message_type, order_id=order_id, tracking_number=tracking_number)
    try:
        receipt = await get_sms_client().send(recipient, body)
    except DownstreamUnavailable as exc:
        logger.warning("SMS to %s failed for %s: %s", recipient, ctx.call_sid, exc)
        await log_event(
            ctx,
            EventType.SMS_SENT,
            {"recipient": recipient, "message_type": message_type, "status": "failed", "error": "SMS provider unavailable"},
        )
        return WorkflowResult(
            call_sid=ctx.call_sid,
            ok=False,
            reason=exc.code,
            response="I wasn't able to send that text just now, but the details are on your account.",
        )

    data = {
        "recipient": recipient,
        "message_type": message_type,
        "message_preview": preview(body),
        "status": receipt.status,
        "message_sid": receipt.message_sid,
    }
    if receipt.simulated:
        data["note"] = "Twilio not configured - SMS simulated"
    await log_event(ctx, EventType.SMS_SENT, data)
    return WorkflowResult(
        call_sid=ctx.call_sid,
        response="Text message sent." if not receipt.simulated else "Text message simulated.",
        data={"message_sid": receipt.message_sid, "simulated": receipt.simulated, "status": receipt.status},
    )


# --- call boundaries ---


@workflow
async def start_call(ctx: SessionContext, source: str = "api", **details) -> WorkflowResult:
    """idle -> active and log call_started. A call that is already active is left alone."""
    registry = get_lifecycle_registry()
    lc = await registry.get(ctx.call_sid)
    if lc.state == ACTIVE:
        return WorkflowResult(call_sid=ctx.call_sid, reason="already_active", response="", data={"state": lc.state})
    await lc.start()
    await log_event(ctx, EventType.CALL_STARTED, {"source": source, **details})
    registry.watch(ctx.call_sid)
    return WorkflowResult(call_sid=ctx.call_sid, response="", data={"state": lc.state})


@workflow
async def end_call(ctx: SessionContext, duration: float = 0, resolution: Optional[str] = None) -> WorkflowResult:
    """Log call_ended, move the lifecycle to summarizing and return the call summary."""
    await log_event(ctx, EventType.CALL_ENDED, {"duration": duration, "resolution": resolution or "completed"})
    lc = await get_lifecycle_registry().peek(ctx.call_sid)
    if lc.state == ACTIVE:
        await lc.end("call_ended")
    summary = summarize_session(await events_store.list_by_session(ctx.call_sid))
    return WorkflowResult(
        call_sid=ctx.call_sid,
        response="",
        data={
            "state": lc.state,
            "summary": summary.model_dump(),
            "notes": render_summary_notes(summary, duration),
        },
    )


async def dismiss_session(ctx: SessionContext) -> Dict[str, Any]:
    """summarizing -> idle (the console closed the summary)."""
    lc = await get_lifecycle_registry().dismiss(ctx.call_sid)
    return lc.as_dict()


async def lifecycle_state(call_sid: str) -> Dict[str, Any]:
    lc = await get_lifecycle_registry().peek(call_sid)
    return lc.as_dict()
