"""
ProfRate - HTTP Middleware
Request logging, security headers and CSRF enforcement
"""

import time
from typing import Callable, Set
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from profrate.core.config import settings
from profrate.core.exceptions import CsrfError, error_response
from profrate.core.logging_config import (
    logger,
    set_request_id,
    set_user_id,
    generate_request_id,
)
from profrate.modules.auth.csrf import SAFE_METHODS, CsrfTokenStore, csrf_token_store
from profrate.modules.auth.sessions import SessionManager, session_manager


# Paths that should skip detailed logging
SKIP_LOGGING_PATHS: Set[str] = {
    "/health",
    "/",
    "/favicon.ico",
    "/docs",
    "/redoc",
    "/openapi.json",
}


def should_skip_logging(path: str) -> bool:
    return path in SKIP_LOGGING_PATHS


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs every request with timing and tags it with an X-Request-ID that
    downstream log records pick up from the context.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or generate_request_id()
        set_request_id(request_id)

        path = request.url.path
        skip_logging = should_skip_logging(path)
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
            duration_ms = (time.perf_counter() - start_time) * 1000

            response.headers["X-Request-ID"] = request_id
            response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"

            if not skip_logging:
                client_ip = request.client.host if request.client else "unknown"
                logger.log_request(
                    request.method, path, response.status_code, duration_ms,
                    client_ip=client_ip,
                )
            return response

        except Exception as exc:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.error(
                f"✗ {request.method} {path} - Exception ({duration_ms:.2f}ms): {type(exc).__name__}",
                exc_info=True,
                extra={
                    "event_type": "http_request_error",
                    "http_method": request.method,
                    "http_path": path,
                    "duration_ms": duration_ms,
                    "error_type": type(exc).__name__,
                }
            )
            raise

        finally:
            set_request_id("")
            set_user_id("")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Middleware to add security headers to all responses
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Cache-Control"] = "no-store"
        if settings.is_production():
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        return response


class CsrfProtectionMiddleware(BaseHTTPMiddleware):
    """
    Rejects state-changing requests that do not carry the live CSRF token
    for the caller's session. Runs before routing, so no handler executes
    on a forged request.
    """

    def __init__(
        self,
        app: ASGIApp,
        store: CsrfTokenStore = csrf_token_store,
        sessions: SessionManager = session_manager,
        header_name: str = settings.CSRF_HEADER_NAME,
    ):
        super().__init__(app)
        self.store = store
        self.sessions = sessions
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.method.upper() in SAFE_METHODS:
            return await call_next(request)

        session_id = self.sessions.session_id_from_request(request)
        supplied = request.headers.get(self.header_name)

        if not await self.store.validate(session_id, supplied):
            client_ip = request.client.host if request.client else "unknown"
            logger.warning(
                f"[CSRF] Rejected {request.method} {request.url.path}",
                extra={
                    "event_type": "csrf_rejected",
                    "http_method": request.method,
                    "http_path": request.url.path,
                    "client_ip": client_ip,
                    "has_session": session_id is not None,
                    "has_token": bool(supplied),
                }
            )
            error = CsrfError()
            return JSONResponse(status_code=error.status_code, content=error_response(error))

        return await call_next(request)


__all__ = [
    "RequestLoggingMiddleware",
    "SecurityHeadersMiddleware",
    "CsrfProtectionMiddleware",
    "should_skip_logging",
    "SKIP_LOGGING_PATHS",
]
