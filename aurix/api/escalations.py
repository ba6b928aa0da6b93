# aurix/api/escalations.py
from typing import List, Optional

from fastapi import APIRouter

from aurix.models.schemas import Escalation, EscalationStatus, ResolveEscalationRequest
from aurix.storage import escalations_store

router = APIRouter()


@router.get("", response_model=List[Escalation], summary="Clinician escalation queue")
async def list_escalations(call_sid: Optional[str] = None, status: Optional[EscalationStatus] = None):
    return await escalations_store.list_escalations(call_sid=call_sid, status=status.value if status else None)


@router.get("/{escalation_id}", response_model=Escalation)
async def get_escalation(escalation_id: int):
    return await escalations_store.get_escalation(escalation_id)


@router.post("/{escalation_id}/resolve", response_model=Escalation)
async def resolve_escalation(escalation_id: int, req: Optional[ResolveEscalationRequest] = None):
    """A clinician closed the case. Resolving twice is a 409."""
    req = req or ResolveEscalationRequest()
    return await escalations_store.resolve_escalation(escalation_id, req.resolved_by)
