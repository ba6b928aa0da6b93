# aurix/api/errors.py
"""Exception handlers mapping the error taxonomy to HTTP responses."""
import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse

from aurix.core.errors import (
    AurixError,
    DownstreamUnavailable,
    InvalidTransition,
    LookupNotFound,
    StoreUnavailable,
    ValidationError,
)

logger = logging.getLogger("aurix.api.errors")


async def validation_error_handler(request: Request, exc: ValidationError):
    logger.info("Rejected %s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"ok": False, "reason": exc.code, "field": exc.field, "message": "Invalid request. Please check the required fields."},
    )


async def not_found_handler(request: Request, exc: LookupNotFound):
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"ok": False, "reason": exc.code, "message": f"{exc.entity.capitalize()} not found"},
    )


async def invalid_transition_handler(request: Request, exc: InvalidTransition):
    logger.info("Invalid transition on %s: %s", request.url.path, exc.message)
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"ok": False, "reason": exc.code, "current": exc.current, "requested": exc.requested},
    )


async def unavailable_handler(request: Request, exc: AurixError):
    """StoreUnavailable / DownstreamUnavailable escaping to the edge: log it, never leak it."""
    logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"ok": False, "reason": exc.code, "message": "Service temporarily unavailable. Please try again later."},
    )


def install_error_handlers(app) -> None:
    app.add_exception_handler(ValidationError, validation_error_handler)
    app.add_exception_handler(LookupNotFound, not_found_handler)
    app.add_exception_handler(InvalidTransition, invalid_transition_handler)
    app.add_exception_handler(StoreUnavailable, unavailable_handler)
    app.add_exception_handler(DownstreamUnavailable, unavailable_handler)
