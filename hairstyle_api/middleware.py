# hairstyle_api/middleware.py
"""
Request/response logging with request ids, timing headers and security headers.
"""

import time
import uuid
from typing import Callable
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from .logging_config import get_logger

logger = get_logger(__name__)

SLOW_REQUEST_SECONDS = 2.0
# Generation requests wait on the provider and are expected to take long
SLOW_GENERATION_REQUEST_SECONDS = 90.0


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Log incoming requests and outgoing responses.
    Adds request_id for tracing and tracks response times.
    """

    # Paths to exclude from logging (health checks, docs)
    EXCLUDED_PATHS = ["/health", "/docs", "/openapi.json", "/redoc"]

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        start_time = time.time()

        should_log = not any(
            request.url.path.startswith(path) for path in self.EXCLUDED_PATHS
        )

        if should_log:
            logger.info(
                f"Incoming request: {request.method} {request.url.path}",
                extra={
                    "request_id": request_id,
                    "extra_data": {
                        "method": request.method,
                        "path": request.url.path,
                        "query_params": dict(request.query_params),
                        "client_host": request.client.host if request.client else None,
                        "user_agent": request.headers.get("user-agent"),
                    }
                }
            )

        try:
            response = await call_next(request)
        except Exception as exc:
            # Log and let it propagate to exception handlers
            logger.error(
                f"Request failed: {request.method} {request.url.path}",
                extra={
                    "request_id": request_id,
                    "user_id": getattr(request.state, "user_id", None),
                    "extra_data": {
                        "method": request.method,
                        "path": request.url.path,
                        "process_time_ms": int((time.time() - start_time) * 1000),
                        "exception": str(exc)
                    }
                },
                exc_info=True
            )
            raise

        process_time = time.time() - start_time
        process_time_ms = int(process_time * 1000)

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = str(process_time_ms)

        # Set by the auth dependency once the identity is resolved
        user_id = getattr(request.state, "user_id", None)

        if should_log:
            if response.status_code >= 500:
                log_level = logger.error
            elif response.status_code >= 400:
                log_level = logger.warning
            else:
                log_level = logger.info

            log_level(
                f"Request completed: {request.method} {request.url.path} - {response.status_code}",
                extra={
                    "request_id": request_id,
                    "user_id": user_id,
                    "extra_data": {
                        "method": request.method,
                        "path": request.url.path,
                        "status_code": response.status_code,
                        "process_time_ms": process_time_ms,
                    }
                }
            )

        threshold = (
            SLOW_GENERATION_REQUEST_SECONDS
            if request.url.path.endswith("/generate")
            else SLOW_REQUEST_SECONDS
        )
        if process_time > threshold:
            logger.warning(
                f"Slow request detected: {request.method} {request.url.path}",
                extra={
                    "request_id": request_id,
                    "user_id": user_id,
                    "extra_data": {
                        "process_time_ms": process_time_ms,
                        "threshold_exceeded": True
                    }
                }
            )

        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Add security headers to all responses
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        return response


def register_middleware(app):
    """
    Register all middleware with FastAPI app.
    Starlette wraps in reverse order: the last one added is the outermost layer.
    """
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)

    logger.info("Middleware registered successfully")
