"""
Rate Limiting for the ProfRate auth API
=======================================
IP-keyed limits via slowapi on the endpoints that send email or create
accounts. Brute-force protection for login lives in LoginAttemptTracker;
these limits only cap request volume.

- /auth/register: REGISTER_RATE_LIMIT (3/hour)
- /auth/forgot-password, /forgot-username, /resend-verification:
  FORGOT_PASSWORD_RATE_LIMIT (3/minute)
"""

from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from fastapi import Request
from fastapi.responses import JSONResponse

from profrate.core.config import settings
from profrate.core.logging_config import logger


def get_client_identifier(request: Request) -> str:
    return f"ip:{get_remote_address(request)}"


def get_storage_uri() -> str:
    """Share counters through Redis when the rest of the ephemeral state does"""
    if settings.STATE_BACKEND.lower() == "redis":
        return settings.REDIS_URL
    return "memory://"


# Create limiter instance
limiter = Limiter(
    key_func=get_client_identifier,
    storage_uri=get_storage_uri(),
    strategy="fixed-window",
    enabled=settings.RATE_LIMIT_ENABLED,
)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    """Same envelope as every other error response, plus Retry-After"""
    logger.warning(
        f"[RateLimit] Exceeded for {get_client_identifier(request)}: {exc.detail}",
        extra={"event_type": "rate_limited", "http_path": request.url.path}
    )

    return JSONResponse(
        status_code=429,
        content={
            "success": False,
            "message": "Too many requests. Please try again later.",
            "error": {
                "code": "RATE_LIMITED",
                "message": "Too many requests. Please try again later.",
                "details": {"limit": str(exc.detail)},
            },
        },
        headers={"Retry-After": "60"},
    )


def register_rate_limit():
    return limiter.limit(settings.REGISTER_RATE_LIMIT)


def email_rate_limit():
    """Endpoints that can trigger an outbound email"""
    return limiter.limit(settings.FORGOT_PASSWORD_RATE_LIMIT)
