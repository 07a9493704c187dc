"""
Domain error mapping - Translates domain exceptions into HTTP responses.

The response body always carries the stable ``reason`` alongside the
human-readable ``detail`` so clients can branch (e.g. send the user back
to the code-entry screen on ``code_expired``).
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from src.domain.exceptions import (
    AlreadyExists,
    AuthenticationFailed,
    CodeError,
    DomainError,
    Forbidden,
    InvalidEmail,
    InvalidState,
    MailDeliveryFailed,
    NotFound,
    StatsUpdateFailed,
)

logger = logging.getLogger(__name__)

# Checked in order; subclasses before their bases
STATUS_BY_ERROR: tuple[tuple[type[DomainError], int], ...] = (
    (NotFound, status.HTTP_404_NOT_FOUND),
    (Forbidden, status.HTTP_403_FORBIDDEN),
    (InvalidState, status.HTTP_409_CONFLICT),
    (AlreadyExists, status.HTTP_409_CONFLICT),
    (InvalidEmail, status.HTTP_400_BAD_REQUEST),
    (CodeError, status.HTTP_400_BAD_REQUEST),
    (AuthenticationFailed, status.HTTP_401_UNAUTHORIZED),
    (MailDeliveryFailed, status.HTTP_502_BAD_GATEWAY),
    (StatsUpdateFailed, status.HTTP_500_INTERNAL_SERVER_ERROR),
)


def status_for(exc: DomainError) -> int:
    for error_type, status_code in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    """Render a domain error as {"detail", "reason"} with its mapped status."""
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)

    headers = None
    if isinstance(exc, AuthenticationFailed):
        headers = {"WWW-Authenticate": "Basic"}

    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc) or exc.reason, "reason": exc.reason},
        headers=headers,
    )


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, domain_error_handler)
