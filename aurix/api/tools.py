# aurix/api/tools.py
"""
Agent tool endpoints.

The conversational agent calls these mid-call. Each one runs a workflow
against the call it names (or a fresh / demo call id when it doesn't) and
returns the WorkflowResult: `ok`, a typed `reason`, the spoken `response`.
"""
import logging

from fastapi import APIRouter

from aurix.config import get_settings
from aurix.core import workflows
from aurix.core.workflows import SessionContext, new_call_sid
from aurix.models.schemas import (
    BookCallbackRequest,
    InquiryRequest,
    QueryOrderRequest,
    RefillRequest,
    SendSMSRequest,
    UpdateAddressRequest,
    WorkflowResult,
)

logger = logging.getLogger("aurix.api.tools")
router = APIRouter()

settings = get_settings()


def _demo_ctx(call_sid):
    return SessionContext(call_sid or settings.DEMO_SESSION_ID)


def _new_ctx(call_sid):
    return SessionContext(call_sid or new_call_sid())


@router.post("/query-order", response_model=WorkflowResult)
async def query_order(req: QueryOrderRequest):
    return await workflows.lookup_order(_demo_ctx(req.call_sid), req.order_number, customer_name=req.customer_name)


@router.post("/request-refill", response_model=WorkflowResult)
async def request_refill(req: RefillRequest):
    return await workflows.request_refill(
        _new_ctx(req.call_sid),
        req.customer_phone,
        req.prescription_id,
        verification_last4=req.verification_last4,
    )


@router.post("/update-address", response_model=WorkflowResult)
async def update_address(req: UpdateAddressRequest):
    return await workflows.update_address(
        _new_ctx(req.call_sid),
        req.customer_phone,
        req.order_id,
        req.new_address_type,
        verification_code=req.verification_code,
    )


@router.post("/handle-inquiry", response_model=WorkflowResult)
async def handle_inquiry(req: InquiryRequest):
    return await workflows.handle_inquiry(
        _new_ctx(req.call_sid),
        req.inquiry_type,
        order_id=req.order_id,
        customer_phone=req.customer_phone,
        question_text=req.question_text,
    )


@router.post("/book-callback", response_model=WorkflowResult)
async def book_callback(req: BookCallbackRequest):
    return await workflows.book_callback(
        _demo_ctx(req.call_sid),
        customer_id=req.customer_id,
        customer_name=req.customer_name,
        callback_reason=req.callback_reason,
        preferred_time=req.preferred_time,
        phone_number=req.phone_number,
        notes=req.notes,
    )


@router.post("/send-sms", response_model=WorkflowResult)
async def send_sms(req: SendSMSRequest):
    return await workflows.send_sms(
        _demo_ctx(req.call_sid),
        req.recipient_phone,
        message_type=req.message_type,
        order_id=req.order_id,
        tracking_number=req.tracking_number,
    )
