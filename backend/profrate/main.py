from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from slowapi.errors import RateLimitExceeded

from profrate.core.config import settings
from profrate.core.database import close_db, init_db
from profrate.core.exceptions import LockoutError, ProfRateError, error_response
from profrate.core.logging_config import logger
from profrate.core.middleware import (
    CsrfProtectionMiddleware,
    RequestLoggingMiddleware,
    SecurityHeadersMiddleware,
)
from profrate.core.rate_limiter import limiter, rate_limit_exceeded_handler
from profrate.core.redis_client import redis_client
from profrate.core.security import credential_hasher
from profrate.api.v1.router import api_router
from profrate.services.state_sweeper import state_sweeper


async def validate_critical_config():
    """Validate critical configuration at startup - fail fast if missing"""
    errors = []
    warnings = []

    if not settings.DATABASE_URL:
        errors.append("DATABASE_URL is not set")

    if not settings.SESSION_SECRET_KEY or settings.SESSION_SECRET_KEY == "CHANGE_ME":
        if settings.is_production():
            errors.append("SESSION_SECRET_KEY is not set or using default value")
        else:
            warnings.append("SESSION_SECRET_KEY is using the development default")

    if settings.HUMAN_VERIFICATION_ENABLED and not settings.HUMAN_VERIFICATION_SECRET:
        errors.append("HUMAN_VERIFICATION_ENABLED is set but HUMAN_VERIFICATION_SECRET is empty")

    if settings.STATE_BACKEND.lower() == "memory" and settings.is_production():
        warnings.append("STATE_BACKEND=memory - sessions and lockouts are per-process and lost on restart")

    if not settings.SMTP_USER:
        warnings.append("SMTP not configured - account emails will not be delivered")

    if errors:
        for err in errors:
            logger.critical(f"[Startup] CRITICAL: {err}")
        raise RuntimeError(f"Missing critical configuration: {', '.join(errors)}")

    for warn in warnings:
        logger.warning(f"[Startup] WARNING: {warn}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler for startup and shutdown"""
    logger.info("=" * 60)
    logger.info(f"Starting {settings.APP_NAME}...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info("=" * 60)

    await validate_critical_config()

    if settings.STATE_BACKEND.lower() == "redis":
        await redis_client.connect()

    await init_db()
    logger.info("[Startup] Database tables ready")

    await credential_hasher.benchmark()
    await state_sweeper.start()

    yield

    logger.info(f"Shutting down {settings.APP_NAME}...")
    await state_sweeper.stop()
    if redis_client.is_connected:
        await redis_client.disconnect()
    await close_db()


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    description="Authentication and account security for ProfRate",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
    redirect_slashes=False
)

# Add rate limiter state and exception handler
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

# Add middleware (order matters - last added runs first)
# 1. CSRF check (innermost, right before routing)
app.add_middleware(CsrfProtectionMiddleware)

# 2. Security headers
app.add_middleware(SecurityHeadersMiddleware)

# 3. Request logging
app.add_middleware(RequestLoggingMiddleware)

# 4. CORS - credentials are needed for the session cookie
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", settings.CSRF_HEADER_NAME, "X-Request-ID"],
    expose_headers=["X-Request-ID", "X-Response-Time", "Retry-After"],
)


# Exception handlers
@app.exception_handler(ProfRateError)
async def profrate_exception_handler(request: Request, exc: ProfRateError):
    headers = None
    if isinstance(exc, LockoutError):
        headers = {"Retry-After": str(exc.remaining_seconds)}
    if exc.status_code >= 500:
        logger.log_error_with_context(exc, context=f"{request.method} {request.url.path}")
    return JSONResponse(status_code=exc.status_code, content=error_response(exc), headers=headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ())[1:]) or None
    message = first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "message": message,
            "error": {
                "code": "VALIDATION_ERROR",
                "message": message,
                "details": {"field": field} if field else {},
            },
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Global exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "message": str(exc) if settings.DEBUG else "An error occurred",
            "error": {"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}},
        }
    )


# Health check endpoint
@app.get("/health", tags=["Health"])
async def health_check():
    return {
        "status": "healthy",
        "app_name": settings.APP_NAME,
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT,
        "state_backend": settings.STATE_BACKEND,
    }


# Include API router
app.include_router(api_router, prefix=settings.API_PREFIX)


def run():
    import uvicorn
    uvicorn.run(
        "profrate.main:app",
        host=settings.SERVER_HOST,
        port=settings.SERVER_PORT,
        reload=settings.DEBUG
    )


if __name__ == "__main__":
    run()
