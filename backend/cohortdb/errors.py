# backend/cohortdb/errors.py
"""
Error taxonomy shared by every cohort-scoped operation.

Each error is an HTTPException, so FastAPI renders it without extra
plumbing, and carries a stable `code` so callers can tell a duplicate key
apart from a rejected batch even when both share a status code.

Body shape: {"code": "...", "message": "..."}
"""

from __future__ import annotations

import logging
import os
import secrets
import time
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

logger = logging.getLogger(__name__)

APP_ENV = os.getenv("APP_ENV", "production").lower()


class CohortError(HTTPException):
    code: str = "INTERNAL_ERROR"
    status_code_default: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    message_default: str = "Internal server error"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        context: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        self.message = message or self.message_default
        self.context = context or {}
        super().__init__(
            status_code=self.status_code_default,
            detail={"code": self.code, "message": self.message},
            headers=headers,
        )


class Unauthenticated(CohortError):
    code = "UNAUTHENTICATED"
    status_code_default = status.HTTP_401_UNAUTHORIZED
    message_default = "Unauthorized"

    def __init__(self, message: Optional[str] = None, **kwargs: Any) -> None:
        kwargs.setdefault("headers", {"WWW-Authenticate": "Bearer"})
        super().__init__(message, **kwargs)


class Forbidden(CohortError):
    code = "FORBIDDEN"
    status_code_default = status.HTTP_403_FORBIDDEN
    message_default = "Forbidden"


class NotFound(CohortError):
    code = "NOT_FOUND"
    status_code_default = status.HTTP_404_NOT_FOUND
    message_default = "Resource not found"


class ValidationFailed(CohortError):
    code = "VALIDATION_FAILED"
    status_code_default = status.HTTP_400_BAD_REQUEST
    message_default = "Invalid request"


class Conflict(CohortError):
    code = "CONFLICT"
    status_code_default = status.HTTP_409_CONFLICT
    message_default = "Resource already exists"


class PartialBatchRejected(CohortError):
    """One or more batch entries are outside the target cohort; nothing was written."""

    code = "PARTIAL_BATCH_REJECTED"
    status_code_default = status.HTTP_400_BAD_REQUEST
    message_default = "Some entries do not belong to this cohort"


def _error_id() -> str:
    return f"ERR_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


# ---------------------------------------------------------------------------
# FASTAPI HANDLERS
# ---------------------------------------------------------------------------


async def _cohort_error_handler(request: Request, exc: CohortError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"code": exc.code, "message": exc.message},
        headers=exc.headers,
    )


async def _validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "code": ValidationFailed.code,
            "message": "Invalid request",
            "errors": jsonable_encoder(exc.errors()),
        },
    )


async def _integrity_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    # Two writers raced past an existence check; the unique index decided.
    logger.info("Unique constraint rejected write on %s", request.url.path)
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"code": Conflict.code, "message": "Resource already exists"},
    )


async def _unhandled_handler(request: Request, exc: Exception) -> JSONResponse:
    error_id = _error_id()
    logger.exception(
        "Unhandled error",
        extra={"error_id": error_id, "path": request.url.path},
    )
    body: Dict[str, Any] = {
        "code": "INTERNAL_ERROR",
        "message": "An unexpected error occurred",
        "error_id": error_id,
    }
    if APP_ENV == "development":
        body["context"] = {"type": type(exc).__name__, "detail": str(exc)}
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=body)


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(CohortError, _cohort_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_handler)
    app.add_exception_handler(IntegrityError, _integrity_handler)
    app.add_exception_handler(Exception, _unhandled_handler)
