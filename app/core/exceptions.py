"""
Typed application errors and their HTTP rendering.

Services raise these; the handlers registered in ``app.main`` turn them into
``{"success": false, "error": ..., "code": ...}`` responses.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class AppError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "APP_ERROR"

    def __init__(self, message: str, code: Optional[str] = None, extra: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.extra = extra or {}

    def to_dict(self) -> dict:
        return {"success": False, "error": self.message, "code": self.code, **self.extra}


class QuotaExceededError(AppError):
    """Daily question limit reached; recoverable by waiting for the reset or upgrading."""
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    code = "QUOTA_EXCEEDED"

    def __init__(self, limit: int):
        super().__init__(
            f"Daily question limit reached ({limit}). Upgrade your plan for more questions.",
            extra={"limit": limit},
        )
        self.limit = limit


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "VALIDATION_ERROR"


class ForbiddenError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"


class InfrastructureError(AppError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "INFRASTRUCTURE_ERROR"


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    logger.info(f"app_error_handler: {exc.code} - {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    # Internals stay in the log, never in the response body
    logger.error(f"database_error_handler: {request.method} {request.url.path} - {exc}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "success": False,
            "error": "Service temporarily unavailable",
            "code": InfrastructureError.code,
        },
    )
