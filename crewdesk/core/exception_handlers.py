"""
Maps core error kinds onto HTTP responses.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from crewdesk.core.errors import (
    Conflict,
    CrewDeskError,
    InvalidTransition,
    NotFound,
    StoreUnavailable,
    ValidationError,
)

logger = logging.getLogger("uvicorn.error")

STATUS_BY_ERROR = {
    InvalidTransition: 409,
    Conflict: 409,
    NotFound: 404,
    ValidationError: 422,
    StoreUnavailable: 503,
}


def status_for(exc: CrewDeskError) -> int:
    for error_type, code in STATUS_BY_ERROR.items():
        if isinstance(exc, error_type):
            return code
    return 400


async def crewdesk_error_handler(request: Request, exc: CrewDeskError) -> JSONResponse:
    code = status_for(exc)
    if isinstance(exc, (Conflict, StoreUnavailable)):
        logger.warning("%s %s failed: %s: %s", request.method, request.url.path, exc.kind, exc.detail)
    body = {"detail": exc.detail, "error": exc.kind}
    if isinstance(exc, InvalidTransition):
        body.update({"current": exc.current, "requested": exc.requested})
    return JSONResponse(status_code=code, content=body)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(CrewDeskError, crewdesk_error_handler)
