"""Translate account service errors into HTTP responses."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..errors import AccountServiceError, ErrorKind, InternalError

logger = logging.getLogger(__name__)

STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.invalid_credential: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.already_exists: status.HTTP_400_BAD_REQUEST,
    ErrorKind.forbidden: status.HTTP_403_FORBIDDEN,
    ErrorKind.not_found: status.HTTP_404_NOT_FOUND,
    ErrorKind.email_conflict: status.HTTP_409_CONFLICT,
    ErrorKind.unauthenticated: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.invalid_cursor: status.HTTP_400_BAD_REQUEST,
    ErrorKind.malformed: status.HTTP_400_BAD_REQUEST,
    ErrorKind.token_expired: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.internal: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

_CHALLENGE_KINDS = {ErrorKind.unauthenticated, ErrorKind.token_expired}


def status_for(error: AccountServiceError) -> int:
    return STATUS_BY_KIND.get(error.kind, status.HTTP_500_INTERNAL_SERVER_ERROR)


def error_response(error: AccountServiceError) -> JSONResponse:
    """Build the JSON response for ``error``; internal failures stay opaque."""
    if isinstance(error, InternalError):
        error = InternalError()
    headers = {"WWW-Authenticate": "Bearer"} if error.kind in _CHALLENGE_KINDS else None
    return JSONResponse(status_code=status_for(error), content=error.to_dict(), headers=headers)


def validation_error_body(exc: RequestValidationError) -> dict:
    """Describe the first structural violation found in the request."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "invalid request payload")
    return {
        "error": "VALIDATION_ERROR",
        "message": "invalid request payload",
        "details": f"{location}: {message}" if location else message,
    }


def install_error_handlers(app: FastAPI) -> None:
    """Register the handlers that map errors to status codes on ``app``."""

    @app.exception_handler(AccountServiceError)
    async def handle_service_error(request: Request, exc: AccountServiceError) -> JSONResponse:
        if isinstance(exc, InternalError):
            logger.error(
                "internal error on %s %s",
                request.method,
                request.url.path,
                exc_info=(type(exc), exc, exc.__traceback__),
            )
        return error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=validation_error_body(exc))

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled error on %s %s", request.method, request.url.path)
        return error_response(InternalError())
