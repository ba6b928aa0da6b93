# aurix/core/errors.py
"""
Error taxonomy shared by the store, the workflows and the HTTP layer.

Only `StoreUnavailable` is meant to escape a workflow; everything else is
caught where it happens, logged as a timeline event and turned into a
friendly response.
"""
from typing import Optional


class AurixError(Exception):
    """Base class. `code` is the typed reason returned to programmatic callers."""

    code = "error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class ValidationError(AurixError):
    """Required input missing or malformed at a workflow boundary."""

    code = "validation_error"

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class LookupNotFound(AurixError):
    """A keyed entity (order, customer, prescription...) does not exist."""

    code = "not_found"

    def __init__(self, entity: str, key: Optional[str]):
        self.entity = entity
        self.key = key
        super().__init__(f"{entity} not found: {key}")


class ComplianceBlocked(AurixError):
    """A request is disallowed by policy."""

    code = "compliance_blocked"

    def __init__(self, reason: str, inquiry_type: Optional[str] = None, action: Optional[str] = None):
        self.reason = reason
        self.inquiry_type = inquiry_type
        self.action = action
        super().__init__(reason)


class DownstreamUnavailable(AurixError):
    """An external collaborator (LLM, records db, SMS provider) failed."""

    code = "downstream_unavailable"

    def __init__(self, service: str, message: str = "service unavailable"):
        self.service = service
        super().__init__(f"{service}: {message}")


class StoreUnavailable(AurixError):
    """The event store cannot accept writes or serve reads."""

    code = "store_unavailable"


class InvalidTransition(AurixError):
    """A state machine (escalation, session lifecycle) was asked for a move it does not allow."""

    code = "invalid_transition"

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"cannot move from {current} to {requested}")
