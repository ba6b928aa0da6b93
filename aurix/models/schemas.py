# aurix/models/schemas.py
"""
Pydantic schemas for the event timeline, its projections and API inputs/outputs.
"""
from enum import Enum
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, ConfigDict, Field


class EventType(str, Enum):
    CALL_STARTED = "call_started"
    USER_SPOKE = "user_spoke"
    AGENT_THINKING = "agent_thinking"
    UNDERSTANDING = "understanding"
    COMPLIANCE_CHECK = "compliance_check"
    IDENTITY_VERIFICATION = "identity_verification"
    QUERYING = "querying"
    RESULTS = "results"
    AGENT_SPOKE = "agent_spoke"
    ACTION = "action"
    SMS_SENT = "sms_sent"
    SMS_PROMPT = "sms_prompt"
    CALL_ENDED = "call_ended"


class CallEventIn(BaseModel):
    """An event as handed to the store; `id`/`created_at` are assigned on append."""

    call_sid: str
    event_type: str
    event_data: Dict[str, Any] = Field(default_factory=dict)
    customer_id: Optional[str] = None
    created_at: Optional[str] = None


class CallEvent(BaseModel):
    """A persisted, immutable timeline event."""

    model_config = ConfigDict(frozen=True)

    id: int
    call_sid: str
    customer_id: Optional[str] = None
    event_type: str
    event_data: Dict[str, Any] = Field(default_factory=dict)
    created_at: str


# --- projections ---


class TranscriptTurn(BaseModel):
    speaker: str  # "user" | "agent"
    text: str
    timestamp: str


class AuditEntry(BaseModel):
    id: int
    event_type: str
    timestamp: str
    description: str
    flagged: bool = False


class AuditTrail(BaseModel):
    call_sid: Optional[str] = None
    blocked: bool = False
    entries: List[AuditEntry] = Field(default_factory=list)


class ActionPerformed(BaseModel):
    type: str
    description: str


class SessionSummary(BaseModel):
    customer_verified: bool = False
    verification_method: Optional[str] = None
    orders_looked_up: List[str] = Field(default_factory=list)
    information_provided: List[str] = Field(default_factory=list)
    actions_performed: List[ActionPerformed] = Field(default_factory=list)
    compliance_blocked: bool = False
    escalations_scheduled: int = 0


class SessionIndexEntry(BaseModel):
    call_sid: str
    started_at: str
    event_count: int
    verified: bool
    orders_accessed: List[str]
    actions_taken: int
    compliance_blocked: bool


# --- escalations ---


class EscalationStatus(str, Enum):
    PENDING_CUSTOMER_DECISION = "pending_customer_decision"
    CALLBACK_SCHEDULED = "callback_scheduled"
    RESOLVED = "resolved"


class Escalation(BaseModel):
    id: int
    call_sid: str
    customer_id: Optional[str] = None
    inquiry_type: Optional[str] = None
    inquiry_text: Optional[str] = None
    blocked_reason: Optional[str] = None
    escalation_status: EscalationStatus
    callback_requested: bool = False
    callback_scheduled_at: Optional[str] = None
    agent_response: Optional[str] = None
    created_at: str
    resolved_at: Optional[str] = None
    resolved_by: Optional[str] = None


# --- workflow results ---


class WorkflowResult(BaseModel):
    """
    Structured outcome of a workflow. `response` is the prose spoken to the
    caller; `data` carries the raw facts so consumers never parse prose.
    """

    call_sid: str
    ok: bool = True
    reason: Optional[str] = None
    response: str
    data: Dict[str, Any] = Field(default_factory=dict)


# --- API inputs ---


class QueryOrderRequest(BaseModel):
    order_number: str
    customer_name: Optional[str] = None
    call_sid: Optional[str] = None


class RefillRequest(BaseModel):
    customer_phone: str
    prescription_id: str
    verification_last4: Optional[str] = None
    call_sid: Optional[str] = None


class UpdateAddressRequest(BaseModel):
    customer_phone: str
    order_id: str
    new_address_type: str = Field(..., description="'home' or 'office'")
    verification_code: Optional[str] = None
    call_sid: Optional[str] = None


class InquiryRequest(BaseModel):
    inquiry_type: str
    order_id: Optional[str] = None
    customer_phone: Optional[str] = None
    question_text: Optional[str] = None
    call_sid: Optional[str] = None


class BookCallbackRequest(BaseModel):
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    callback_reason: Optional[str] = None
    preferred_time: Optional[str] = None
    phone_number: Optional[str] = None
    notes: Optional[str] = None
    call_sid: Optional[str] = None


class SendSMSRequest(BaseModel):
    recipient_phone: str
    message_type: str = "other"
    order_id: Optional[str] = None
    tracking_number: Optional[str] = None
    call_sid: Optional[str] = None


class ProcessSpeechRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    call_sid: Optional[str] = Field(None, alias="callSid")
    user_speech: Optional[str] = Field(None, alias="userSpeech")


class SimulateCallRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    call_sid: Optional[str] = Field(None, alias="callSid")


class EndCallRequest(BaseModel):
    duration: float = 0
    resolution: Optional[str] = None


class ResolveEscalationRequest(BaseModel):
    resolved_by: str = "clinician"
