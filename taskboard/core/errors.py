"""Domain exceptions and error classification for workflow operations."""

from enum import Enum

from pydantic import BaseModel

from taskboard.core.db_client import DatabaseError


class ErrorSeverity(Enum):
    """Severity levels for errors."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCode:
    """Error codes for specific error conditions."""

    # Lookup errors
    ERR_TASK_NOT_FOUND = "ERR_TASK_NOT_FOUND"
    ERR_COMMENT_NOT_FOUND = "ERR_COMMENT_NOT_FOUND"
    ERR_USER_NOT_FOUND = "ERR_USER_NOT_FOUND"

    # Authorization errors
    ERR_FORBIDDEN = "ERR_FORBIDDEN"
    ERR_UNAUTHENTICATED = "ERR_UNAUTHENTICATED"

    # Workflow errors
    ERR_INVALID_STATE = "ERR_INVALID_STATE"
    ERR_VALIDATION = "ERR_VALIDATION"
    ERR_CONFLICT = "ERR_CONFLICT"
    ERR_TIMEOUT = "ERR_TIMEOUT"

    # Storage errors
    ERR_DATABASE = "ERR_DATABASE"

    # Generic errors
    ERR_UNKNOWN = "ERR_UNKNOWN"


class TaskboardError(Exception):
    """Base class for errors raised by the workflow engine."""

    code: str = ErrorCode.ERR_UNKNOWN

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        # KeyError subclasses would otherwise repr() the message
        return self.message


class NotFoundError(TaskboardError, KeyError):
    """A task, comment or user referenced by the request does not exist."""


class TaskNotFoundError(NotFoundError):
    code = ErrorCode.ERR_TASK_NOT_FOUND


class CommentNotFoundError(NotFoundError):
    code = ErrorCode.ERR_COMMENT_NOT_FOUND


class UserNotFoundError(NotFoundError):
    code = ErrorCode.ERR_USER_NOT_FOUND


class UnauthenticatedError(TaskboardError, PermissionError):
    """The request carries no valid principal token."""

    code = ErrorCode.ERR_UNAUTHENTICATED


class ForbiddenError(TaskboardError, PermissionError):
    """The actor lacks the creator/assignee/author relationship the operation requires."""

    code = ErrorCode.ERR_FORBIDDEN


class InvalidStateError(TaskboardError, ValueError):
    """The task's current status does not permit the operation."""

    code = ErrorCode.ERR_INVALID_STATE


class TaskValidationError(TaskboardError, ValueError):
    """Malformed input: out-of-range progress, empty title, unknown enum value, etc."""

    code = ErrorCode.ERR_VALIDATION


class ConflictError(TaskboardError, RuntimeError):
    """Concurrent updates kept winning the version race after all retries."""

    code = ErrorCode.ERR_CONFLICT


class OperationTimeoutError(TaskboardError, TimeoutError):
    """The operation did not complete before its deadline; nothing was persisted."""

    code = ErrorCode.ERR_TIMEOUT


class ErrorResponse(BaseModel):
    """Structured error response with user-friendly messaging."""

    code: str
    message: str
    suggestion: str
    severity: ErrorSeverity


def classify_error_with_response(exception: Exception) -> ErrorResponse:  # noqa: PLR0911
    """Classify an error and return a structured response with recovery suggestions.

    Args:
        exception: The exception raised during execution

    Returns:
        ErrorResponse with code, message, suggestion, and severity
    """
    if isinstance(exception, NotFoundError):
        return ErrorResponse(
            code=exception.code,
            message=exception.message,
            suggestion="Check the identifier and try again.",
            severity=ErrorSeverity.LOW,
        )

    if isinstance(exception, UnauthenticatedError):
        return ErrorResponse(
            code=exception.code,
            message=exception.message,
            suggestion="Sign in again to obtain a fresh token.",
            severity=ErrorSeverity.LOW,
        )

    if isinstance(exception, ForbiddenError):
        return ErrorResponse(
            code=exception.code,
            message=exception.message,
            suggestion="Only the task creator or its assignees may perform this action.",
            severity=ErrorSeverity.MEDIUM,
        )

    if isinstance(exception, InvalidStateError):
        return ErrorResponse(
            code=exception.code,
            message=exception.message,
            suggestion="Refresh the task to see its current status.",
            severity=ErrorSeverity.LOW,
        )

    if isinstance(exception, TaskValidationError):
        return ErrorResponse(
            code=exception.code,
            message=exception.message,
            suggestion="Correct the highlighted fields and resubmit.",
            severity=ErrorSeverity.LOW,
        )

    if isinstance(exception, ConflictError):
        return ErrorResponse(
            code=exception.code,
            message=exception.message,
            suggestion="The task is being edited by someone else. Please retry.",
            severity=ErrorSeverity.MEDIUM,
        )

    if isinstance(exception, OperationTimeoutError):
        return ErrorResponse(
            code=exception.code,
            message=exception.message,
            suggestion="Please try again in a moment.",
            severity=ErrorSeverity.HIGH,
        )

    if isinstance(exception, DatabaseError):
        return ErrorResponse(
            code=ErrorCode.ERR_DATABASE,
            message="A storage error occurred.",
            suggestion="Please try again later. If the problem persists, contact support.",
            severity=ErrorSeverity.CRITICAL,
        )

    return ErrorResponse(
        code=ErrorCode.ERR_UNKNOWN,
        message="An unexpected error occurred.",
        suggestion="Please try again later. If the problem persists, contact support.",
        severity=ErrorSeverity.MEDIUM,
    )
