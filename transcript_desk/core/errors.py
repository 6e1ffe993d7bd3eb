"""
Application errors and exception handlers

Every error raised by the editing core derives from AppError and carries
enough context (target_type, target_id, operation) for the caller to log it
and for the client to render an actionable message.
"""

from typing import Any, Optional

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from transcript_desk.core.logging import get_logger, get_request_id

logger = get_logger(__name__)


class AppError(Exception):
    """Base class for all application errors"""

    code: str = "app_error"
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
        target_type: Optional[str] = None,
        target_id: Optional[str] = None,
        operation: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.details: dict[str, Any] = dict(details or {})
        for key, value in (
            ("target_type", target_type),
            ("target_id", target_id),
            ("operation", operation),
        ):
            if value is not None:
                self.details[key] = value

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


# ---------------------------------------------------------------------------
# Validation: rejected locally, never reaches the store
# ---------------------------------------------------------------------------

class ValidationError(AppError):
    code = "validation_error"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class InvalidSplitPoint(ValidationError):
    code = "invalid_split_point"


class NoPreviousSegment(ValidationError):
    code = "no_previous_segment"


class InvalidFormat(ValidationError):
    code = "invalid_format"


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------

class AuthenticationError(AppError):
    code = "authentication_required"
    status_code = status.HTTP_401_UNAUTHORIZED


class Unauthenticated(AuthenticationError):
    pass


# ---------------------------------------------------------------------------
# Consistency: surfaced verbatim, retrying will not change the outcome
# ---------------------------------------------------------------------------

class ConsistencyError(AppError):
    code = "consistency_error"
    status_code = status.HTTP_409_CONFLICT


class NotFound(ConsistencyError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class SegmentNotFound(NotFound):
    code = "segment_not_found"


class AlreadyExists(ConsistencyError):
    code = "already_exists"


class AlreadyRolledBack(ConsistencyError):
    code = "already_rolled_back"


class InvalidTransition(ConsistencyError):
    code = "invalid_state_transition"


class UnsupportedTarget(ConsistencyError):
    code = "unsupported_target"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class IncompleteChunkSet(ConsistencyError):
    code = "incomplete_chunk_set"


class CorruptChunk(ConsistencyError):
    code = "corrupt_chunk"


class CorruptSnapshot(ConsistencyError):
    code = "corrupt_snapshot"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class UnsplittableUnit(ConsistencyError):
    code = "unsplittable_unit"
    status_code = status.HTTP_413_REQUEST_ENTITY_TOO_LARGE


class ChunkLimitExceeded(UnsplittableUnit):
    code = "chunk_limit_exceeded"


# ---------------------------------------------------------------------------
# Store failures
# ---------------------------------------------------------------------------

class TransientStoreError(AppError):
    """Network/storage failure. Safe to retry."""

    code = "store_unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class LoginError(AppError):
    code = "login_failed"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------

def _error_body(code: str, message: str, details: Any = None) -> dict[str, Any]:
    return {
        "error": {"code": code, "message": message, "details": details or {}},
        "request_id": get_request_id(),
    }


async def app_exception_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.message} {exc.details}")
    else:
        logger.info(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.code, exc.message, exc.details),
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body("http_error", str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=_error_body(
            "request_validation_error",
            "Request payload is invalid",
            {"errors": exc.errors()},
        ),
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body("internal_error", "Internal server error"),
    )
