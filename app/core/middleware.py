"""
Core middleware components for SkillBadge Backend.
Includes CORS, request logging and security headers.
"""

import time
import uuid
from typing import Callable, Sequence

from fastapi import Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from ..utils.logger import get_logger

logger = get_logger("middleware")


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware for logging HTTP requests and responses.
    Logs method, path, response time, and status code.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = str(uuid.uuid4())[:8]
        start_time = time.time()

        method = request.method
        path = request.url.path
        client_ip = request.client.host if request.client else "unknown"

        logger.info(f"[{request_id}] {method} {path} - Client: {client_ip}")

        try:
            response = await call_next(request)
        except Exception as e:
            process_time = time.time() - start_time
            logger.error(f"[{request_id}] {method} {path} - Error: {str(e)} - Time: {process_time:.4f}s")
            raise

        process_time = time.time() - start_time
        logger.info(
            f"[{request_id}] {method} {path} - "
            f"Status: {response.status_code} - "
            f"Time: {process_time:.4f}s"
        )

        response.headers["X-Process-Time"] = str(process_time)
        response.headers["X-Request-ID"] = request_id
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Middleware to add security headers to all responses.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        return response


def setup_cors_middleware(app, origins: Sequence[str] = ("*",)):
    """
    Setup CORS middleware for the dashboard origins.

    Args:
        app: FastAPI application instance
        origins: Allowed origins; "*" disables credentialed requests
    """
    origins = list(origins)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials="*" not in origins,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Process-Time"]
    )


def setup_middleware_stack(app, origins: Sequence[str] = ("*",)):
    """
    Setup the complete middleware stack for the application.

    Args:
        app: FastAPI application instance
        origins: CORS origins from settings
    """
    # The last middleware added runs first, so CORS wraps the others
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(LoggingMiddleware)
    setup_cors_middleware(app, origins)
