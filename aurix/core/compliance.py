# aurix/core/compliance.py
"""
Scope-of-practice policy for inbound inquiries.

Agents may talk about orders, delivery, refills, payments and addresses.
Anything that amounts to medical advice must go to a licensed clinician.

Exposes:
 - ComplianceDecision
 - CompliancePolicy.classify(inquiry_type) / .enforce(inquiry_type)
 - default_policy
"""
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from aurix.core.errors import ComplianceBlocked

logger = logging.getLogger("aurix.core.compliance")

ALLOWED_INQUIRIES = (
    "order_status",
    "delivery_date",
    "tracking_number",
    "refill_request",
    "payment_update",
    "address_change",
)
BLOCKED_INQUIRIES = (
    "medical_advice",
    "side_effects",
    "dosage_change",
    "drug_interactions",
    "medical_condition",
)


@dataclass(frozen=True)
class ComplianceDecision:
    allowed: bool
    reason: str
    action: Optional[str] = None

    def as_event_data(self, inquiry_type: Optional[str]) -> dict:
        data = {"inquiry_type": inquiry_type, "allowed": self.allowed, "reason": self.reason}
        if self.action:
            data["action"] = self.action
        return data


class CompliancePolicy:
    def __init__(self, allowed: Iterable[str] = ALLOWED_INQUIRIES, blocked: Iterable[str] = BLOCKED_INQUIRIES):
        self.allowed = frozenset(allowed)
        self.blocked = frozenset(blocked)

    def classify(self, inquiry_type: Optional[str]) -> ComplianceDecision:
        kind = (inquiry_type or "").strip().lower()
        if kind in self.blocked:
            return ComplianceDecision(False, "Medical advice requires licensed clinician", "Schedule clinician callback")
        if kind in self.allowed:
            return ComplianceDecision(True, "Order/delivery inquiry within agent scope")
        return ComplianceDecision(True, "General inquiry - allowed with monitoring")

    def enforce(self, inquiry_type: Optional[str]) -> ComplianceDecision:
        """classify(), raising ComplianceBlocked when the inquiry is out of scope."""
        decision = self.classify(inquiry_type)
        if not decision.allowed:
            logger.info("Inquiry %s blocked: %s", inquiry_type, decision.reason)
            raise ComplianceBlocked(decision.reason, inquiry_type=inquiry_type, action=decision.action)
        return decision


default_policy = CompliancePolicy()
