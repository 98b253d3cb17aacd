"""Map database errors onto HTTP error responses.

``map_database_error`` is framework-neutral; ``register_exception_handlers``
installs it on a FastAPI application so every database failure reaches the
client as ``{statusCode, message, error, timestamp, path}``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from bson.errors import InvalidId
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from pymongo.errors import ConnectionFailure, PyMongoError
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from databasekit.exceptions import (
    ConnectionError,
    DuplicateEntityError,
    EntityNotFoundError,
    RepositoryError,
    ValidationError,
)
from databasekit.resilience import extract_sqlstate
from databasekit.shared.utils.datetime_utils import isoformat_utc
from databasekit.shared.utils.logging import get_logger

logger = get_logger(__name__)

MONGO_DUPLICATE_KEY = 11000

# sqlstate -> (status, message, error)
SQLSTATE_RESPONSES: dict[str, tuple[int, str, str]] = {
    "23505": (status.HTTP_409_CONFLICT, "A record with this value already exists", "UniqueConstraintViolation"),
    "23503": (status.HTTP_400_BAD_REQUEST, "Referenced record does not exist", "ForeignKeyViolation"),
    "23502": (status.HTTP_400_BAD_REQUEST, "Required field is missing", "NotNullViolation"),
    "23514": (
        status.HTTP_400_BAD_REQUEST,
        "Value does not meet constraint requirements",
        "CheckConstraintViolation",
    ),
    "08006": (status.HTTP_503_SERVICE_UNAVAILABLE, "Database connection error", "ConnectionError"),
    "08001": (status.HTTP_503_SERVICE_UNAVAILABLE, "Database connection error", "ConnectionError"),
    "08004": (status.HTTP_503_SERVICE_UNAVAILABLE, "Database connection error", "ConnectionError"),
}

DATABASE_FAILURE = (status.HTTP_500_INTERNAL_SERVER_ERROR, "Database operation failed", "DatabaseError")


@dataclass
class ErrorResponse:
    """Error body sent to HTTP clients."""

    status_code: int
    message: str
    error: str
    timestamp: str
    path: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "statusCode": self.status_code,
            "message": self.message,
            "error": self.error,
            "timestamp": self.timestamp,
            "path": self.path,
        }


def _constraint_name(exc: BaseException) -> str | None:
    orig = getattr(exc, "orig", None) or exc
    for source in (orig, getattr(orig, "__cause__", None), getattr(orig, "diag", None)):
        name = getattr(source, "constraint_name", None)
        if isinstance(name, str) and name:
            return name
    return None


def _classify(exc: BaseException, expose_details: bool) -> tuple[int, str, str]:
    if isinstance(exc, StarletteHTTPException):
        return exc.status_code, str(exc.detail), type(exc).__name__

    if isinstance(exc, ValidationError):
        return status.HTTP_400_BAD_REQUEST, exc.message, "ValidationError"
    if isinstance(exc, DuplicateEntityError):
        return status.HTTP_409_CONFLICT, exc.message, "DuplicateEntityError"
    if isinstance(exc, EntityNotFoundError):
        return status.HTTP_404_NOT_FOUND, exc.message, "EntityNotFoundError"
    if isinstance(exc, ConnectionError):
        return status.HTTP_503_SERVICE_UNAVAILABLE, "Database connection error", "ConnectionError"

    if isinstance(exc, InvalidId):
        return status.HTTP_400_BAD_REQUEST, "Invalid ID format", "CastError"
    if isinstance(exc, PyMongoError):
        if getattr(exc, "code", None) == MONGO_DUPLICATE_KEY:
            return status.HTTP_409_CONFLICT, "A record with this value already exists", "DuplicateKeyError"
        if isinstance(exc, ConnectionFailure):
            return status.HTTP_503_SERVICE_UNAVAILABLE, "Database connection error", "ConnectionError"
        return DATABASE_FAILURE

    sqlstate = extract_sqlstate(exc)
    if sqlstate is not None:
        code, message, error = SQLSTATE_RESPONSES.get(sqlstate, DATABASE_FAILURE)
        if sqlstate == "23505":
            constraint = _constraint_name(exc)
            if constraint:
                message = f"{message} ({constraint})"
        return code, message, error
    if isinstance(exc, (SQLAlchemyError, RepositoryError)):
        return DATABASE_FAILURE

    message = str(exc) if expose_details and str(exc) else "An unexpected error occurred"
    return status.HTTP_500_INTERNAL_SERVER_ERROR, message, type(exc).__name__ or "InternalServerError"


def map_database_error(exc: BaseException, path: str = "/", expose_details: bool = False) -> ErrorResponse:
    """Translate any exception into the standard error response.

    Args:
        exc: The error raised by a repository, adapter or driver
        path: Request path echoed back to the client
        expose_details: Include the message of unclassified errors
    """
    status_code, message, error = _classify(exc, expose_details)
    return ErrorResponse(
        status_code=status_code,
        message=message,
        error=error,
        timestamp=isoformat_utc(),
        path=path or "/",
    )


def log_error_response(exc: BaseException, response: ErrorResponse) -> None:
    """5xx at error level (with traceback), 4xx at warning level."""
    if response.status_code >= 500:
        logger.error(
            "database_error",
            error=response.error,
            message=response.message,
            path=response.path,
            error_type=type(exc).__name__,
            exc_info=exc,
        )
    elif response.status_code >= 400:
        logger.warning("database_error", error=response.error, message=response.message, path=response.path)
    else:
        logger.info("database_error", error=response.error, message=response.message, path=response.path)


def register_exception_handlers(app: FastAPI, expose_details: bool | None = None) -> None:
    """Install database error handlers on a FastAPI app.

    Args:
        app: Application to configure
        expose_details: Defaults to ``app.debug``
    """
    expose = app.debug if expose_details is None else expose_details

    async def database_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        response = map_database_error(exc, path=request.url.path, expose_details=expose)
        log_error_response(exc, response)
        return JSONResponse(status_code=response.status_code, content=response.to_dict())

    for exc_class in (RepositoryError, PyMongoError, InvalidId, SQLAlchemyError):
        app.add_exception_handler(exc_class, database_exception_handler)


__all__ = [
    "ErrorResponse",
    "SQLSTATE_RESPONSES",
    "log_error_response",
    "map_database_error",
    "register_exception_handlers",
]
