"""
Application error taxonomy and the FastAPI handlers that render it.

Every failure leaves the API as the same envelope the success path uses:
``{"message": ..., "success": false, "status": <code>}``, with the HTTP status
mirroring ``status``.
"""

from typing import Any, Optional

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = structlog.get_logger(__name__, channel="error")


class AppError(Exception):
    """Base class for all application exceptions."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        errors: Optional[Any] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.errors = errors
        super().__init__(self.message)


class BadRequestError(AppError):
    def __init__(self, message: str = "Bad request", errors: Optional[Any] = None):
        super().__init__(message, status.HTTP_400_BAD_REQUEST, errors)


class UnauthorizedError(AppError):
    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, status.HTTP_401_UNAUTHORIZED)


class ForbiddenError(AppError):
    def __init__(self, message: str = "Forbidden"):
        super().__init__(message, status.HTTP_403_FORBIDDEN)


class NotFoundError(AppError):
    def __init__(self, message: str = "Not found"):
        super().__init__(message, status.HTTP_404_NOT_FOUND)


class ConflictError(AppError):
    def __init__(self, message: str = "Conflict"):
        super().__init__(message, status.HTTP_409_CONFLICT)


class InternalError(AppError):
    def __init__(self, message: str = "Internal server error"):
        super().__init__(message, status.HTTP_500_INTERNAL_SERVER_ERROR)


class InvalidCiphertext(InternalError):
    """Raised when a stored security code cannot be decrypted."""

    def __init__(self, message: str = "ciphertext too short"):
        super().__init__(message)


class CacheError(InternalError):
    """Raised when a value cannot be serialized for the cache."""


def error_body(message: str, status_code: int, errors: Optional[Any] = None) -> dict:
    body = {"message": message, "success": False, "status": status_code}
    if errors is not None:
        body["errors"] = errors
    return body


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            "Request failed", path=request.url.path, error=exc.message, code=exc.__class__.__name__
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.message, exc.status_code, exc.errors),
    )


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = [
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg')}"
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body("Validation error", status.HTTP_400_BAD_REQUEST, errors),
    )


async def http_error_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(str(exc.detail), exc.status_code),
        headers=getattr(exc, "headers", None),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
