"""
Middleware configuration for the application.
Includes correlation ids, request logging, CORS, rate limiting and the
top-level recovery boundary.
"""

import time
from typing import Callable

import structlog
from asgi_correlation_id import CorrelationIdMiddleware
from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.config import Settings
from app.core.exceptions import error_body

logger = structlog.get_logger(__name__, channel="error")
request_logger = structlog.get_logger(__name__, channel="request")
security_logger = structlog.get_logger(__name__, channel="security")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log requests and responses with timing."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()

        request_logger.info(
            "Incoming request",
            method=request.method,
            path=request.url.path,
            client_ip=request.client.host if request.client else "unknown",
        )

        response = await call_next(request)

        request_logger.info(
            "Request completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            process_time_ms=round((time.time() - start_time) * 1000, 2),
        )
        return response


class RecoveryMiddleware(BaseHTTPMiddleware):
    """
    Last line of defence: any exception no handler claimed becomes a generic 500.

    The traceback is logged, the client only sees the envelope.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception:
            logger.exception(
                "Recovered from unhandled error",
                method=request.method,
                path=request.url.path,
            )
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content=error_body(
                    "Internal server error", status.HTTP_500_INTERNAL_SERVER_ERROR
                ),
            )


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    limit_info = str(exc.limit.limit) if getattr(exc, "limit", None) else "rate limit"
    security_logger.warning(
        "Rate limit exceeded",
        path=request.url.path,
        client_ip=get_remote_address(request),
        limit=limit_info,
    )
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content=error_body(
            f"Too many requests ({limit_info})", status.HTTP_429_TOO_MANY_REQUESTS
        ),
    )


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Install middleware. Starlette runs them last-added-first."""

    # Innermost: turns stray exceptions into a 500 envelope
    app.add_middleware(RecoveryMiddleware)

    limiter = Limiter(
        key_func=get_remote_address,
        default_limits=[settings.rate_limit],
        enabled=settings.rate_limit_enabled,
    )
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["Origin", "Content-Type", "Accept", "Authorization"],
    )

    app.add_middleware(RequestLoggingMiddleware)

    # Outermost so every log line carries the request id
    app.add_middleware(
        CorrelationIdMiddleware,
        header_name="X-Request-ID",
        update_request_header=True,
    )
