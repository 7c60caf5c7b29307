"""JSON envelope helpers and exception handlers for the HTTP interface."""

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from taskboard.core.config import constants
from taskboard.core.db_client import DatabaseError
from taskboard.core.errors import (
    ConflictError,
    ErrorCode,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    OperationTimeoutError,
    TaskboardError,
    TaskValidationError,
    UnauthenticatedError,
    classify_error_with_response,
)


logger = logging.getLogger(__name__)

# Checked in order; the first matching class decides the status
_STATUS_BY_ERROR: tuple[tuple[type[Exception], int], ...] = (
    (NotFoundError, constants.HTTP_NOT_FOUND),
    (UnauthenticatedError, constants.HTTP_UNAUTHORIZED),
    (ForbiddenError, constants.HTTP_FORBIDDEN),
    (InvalidStateError, constants.HTTP_CONFLICT),
    (TaskValidationError, constants.HTTP_UNPROCESSABLE),
    (ConflictError, constants.HTTP_CONFLICT),
    (OperationTimeoutError, constants.HTTP_GATEWAY_TIMEOUT),
    (DatabaseError, constants.HTTP_SERVER_ERROR),
)


def status_for(exc: Exception) -> int:
    """Map a domain or storage exception to its HTTP status code."""
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return constants.HTTP_SERVER_ERROR


def envelope(message: str | None = None, **payload: Any) -> dict[str, Any]:  # noqa: ANN401
    """Build a success envelope; payload values are included as given."""
    body: dict[str, Any] = {"success": True}
    if message:
        body["message"] = message
    body.update(payload)
    return body


def error_response(*, status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message, "code": code},
    )


async def handle_domain_error(request: Request, exc: Exception) -> JSONResponse:
    """Render TaskboardError and DatabaseError as the error envelope."""
    status_code = status_for(exc)
    classified = classify_error_with_response(exc)
    level = logging.ERROR if status_code >= constants.HTTP_SERVER_ERROR else logging.INFO
    logger.log(
        level,
        "request_failed",
        extra={"path": request.url.path, "code": classified.code, "status_code": status_code},
    )
    return error_response(status_code=status_code, code=classified.code, message=classified.message)


async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render FastAPI payload validation failures as a 422 error envelope."""
    parts = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        parts.append(f"{location}: {err.get('msg')}" if location else str(err.get("msg")))
    message = "; ".join(parts) or "Invalid request"
    logger.info("request_validation_failed", extra={"path": request.url.path, "error": message})
    return error_response(
        status_code=constants.HTTP_UNPROCESSABLE,
        code=ErrorCode.ERR_VALIDATION,
        message=message,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the envelope exception handlers to an application."""
    app.add_exception_handler(TaskboardError, handle_domain_error)
    app.add_exception_handler(DatabaseError, handle_domain_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation)
