"""
Mapping of domain errors to HTTP responses.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from community_contest.core.errors import (
    ConflictError,
    ContestError,
    InvalidState,
    NotAuthenticated,
    NotAuthorized,
    NotCommentable,
    NotFound,
    NotVotable,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Checked in order; subclasses before their parents.
ERROR_STATUS_CODES = (
    (ValidationError, 422),
    (NotAuthenticated, 401),
    (NotAuthorized, 403),
    (NotFound, 404),
    (NotVotable, 409),
    (NotCommentable, 409),
    (InvalidState, 409),
    (ConflictError, 409),
)


def status_code_for(error: ContestError) -> int:
    for error_cls, status_code in ERROR_STATUS_CODES:
        if isinstance(error, error_cls):
            return status_code
    return 400


async def contest_error_handler(request: Request, exc: ContestError) -> JSONResponse:
    status_code = status_code_for(exc)
    logger.info(f"{request.method} {request.url.path} refused ({status_code} {exc.code}): {exc.message}")
    return JSONResponse(status_code=status_code, content={"detail": exc.message, "code": exc.code})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ContestError, contest_error_handler)
