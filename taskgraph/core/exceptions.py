import logging
from datetime import datetime, UTC
from enum import Enum
from typing import Optional, Dict, Any, List

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """Machine-readable ``code`` field of every error body."""

    NOT_FOUND = "not_found"
    BAD_REQUEST = "bad_request"
    HTTP_ERROR = "http_error"
    VALIDATION_ERROR = "validation_error"
    INVALID_DATE = "invalid_date"
    CYCLE_DETECTED = "cycle_detected"
    STORE_UNAVAILABLE = "store_unavailable"
    INTERNAL_SERVER_ERROR = "internal_server_error"


class APIException(HTTPException):
    """
    Error raised by the engine that maps onto an HTTP status.

    Services raise subclasses of this; the API layer renders them with
    :func:`format_error_response`.
    :param message: Human readable text.
    :param status_code: HTTP status to answer with.
    :param code: Stable error code.
    :param details: Extra context, serialised as-is.
    """

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        code: ErrorCode = ErrorCode.INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(status_code=status_code, detail=message)
        self.message = message
        self.code = code
        self.details = details if details is not None else {}


class NotFoundException(APIException):
    """A task, milestone, project, template or member does not exist."""

    def __init__(self, resource: str, identifier: Optional[str] = None):
        suffix = f" (ID: {identifier})" if identifier else ""
        super().__init__(
            f"{resource} not found{suffix}",
            status.HTTP_404_NOT_FOUND,
            ErrorCode.NOT_FOUND,
            {"resource": resource, "identifier": identifier},
        )


class ValidationException(APIException):
    """A request is well-formed but breaks a rule of the task graph."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(
            message,
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            ErrorCode.BAD_REQUEST,
            {"field": field} if field else None,
        )


class InvalidDateException(APIException):
    """
    A date could not be parsed or falls outside the accepted years.
    Raised before anything is written.
    """

    def __init__(self, message: str, value: Optional[Any] = None):
        super().__init__(
            message,
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            ErrorCode.INVALID_DATE,
            None if value is None else {"value": str(value)},
        )


class CycleDetectedException(APIException):
    def __init__(self, task_id: Any, message: Optional[str] = None):
        super().__init__(
            message or "Task hierarchy contains a cycle",
            status.HTTP_409_CONFLICT,
            ErrorCode.CYCLE_DETECTED,
            {"task_id": str(task_id)},
        )


class StoreUnavailableException(APIException):
    """
    Persistence failed part way through an operation.
    Nothing was kept, so the caller may simply retry.
    """

    def __init__(self, operation: str):
        super().__init__(
            f"Task store unavailable during {operation}",
            status.HTTP_503_SERVICE_UNAVAILABLE,
            ErrorCode.STORE_UNAVAILABLE,
            {"operation": operation, "retryable": True},
        )


def format_error_response(
    message: str,
    code: ErrorCode = ErrorCode.INTERNAL_SERVER_ERROR,
    details: Optional[Dict[str, Any]] = None,
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
) -> Dict[str, Any]:
    """
    Build the error body shared by every failing endpoint.
    :return: Dict with ``error``, ``message``, ``code``, ``status_code``,
        ``timestamp`` and ``details``.
    """
    return {
        "error": True,
        "message": message,
        "code": code.value,
        "status_code": status_code,
        "timestamp": datetime.now(UTC).isoformat(),
        "details": details or {},
    }


def _error_json(
    status_code: int,
    message: str,
    code: ErrorCode,
    details: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=format_error_response(message, code, details, status_code),
    )


def _describe_request_error(error: Dict[str, Any]) -> Dict[str, str]:
    location = [str(part) for part in error["loc"] if part != "body"]
    kind = error["type"]
    message = error["msg"]
    if kind == "missing":
        message = "This field is required"
    elif kind.startswith("date"):
        message = f"Invalid date: {message}"
    elif kind == "value_error":
        message = error.get("ctx", {}).get("reason", message)
    return {
        "field": ".".join(location) or "unknown",
        "message": message,
        "type": kind,
    }


async def api_exception_handler(request: Request, exc: APIException) -> JSONResponse:
    if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.warning(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
    return _error_json(exc.status_code, exc.message, exc.code, exc.details)


async def request_validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """
    Render FastAPI body, path and query validation failures.
    Each failing field is listed under ``details.errors``.
    """
    errors: List[Dict[str, str]] = [_describe_request_error(e) for e in exc.errors()]
    return _error_json(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Validation failed",
        ErrorCode.VALIDATION_ERROR,
        {"errors": errors},
    )


async def pydantic_validation_exception_handler(
    request: Request, exc: ValidationError
) -> JSONResponse:
    """Render a model validation error raised inside a handler."""
    errors = [
        {
            "field": ".".join(str(part) for part in e["loc"]),
            "message": e["msg"],
            "type": e["type"],
        }
        for e in exc.errors()
    ]
    return _error_json(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Data validation failed",
        ErrorCode.VALIDATION_ERROR,
        {"errors": errors},
    )


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    # Also catches router-level 404/405 raised by Starlette itself
    return _error_json(exc.status_code, str(exc.detail), ErrorCode.HTTP_ERROR)


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return _error_json(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "Internal server error",
        ErrorCode.INTERNAL_SERVER_ERROR,
        {"type": type(exc).__name__},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Attach every handler above to the application.
    :param app: FastAPI application
    """
    app.add_exception_handler(APIException, api_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
    app.add_exception_handler(ValidationError, pydantic_validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
