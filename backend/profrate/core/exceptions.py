"""
Custom Exceptions for ProfRate
==============================

Every error raised by the authentication subsystem derives from
ProfRateError and carries the HTTP status it maps to. The API layer renders
them with error_response(); anything else is an unexpected failure and is
handled by the global exception handler.

Usage:
    from profrate.core.exceptions import LockoutError

    if tracker.is_locked(username, ip):
        raise LockoutError(remaining_seconds)
"""

from typing import Optional, Any, Dict, List


class ProfRateError(Exception):
    """Base exception for all ProfRate errors"""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }


# ============================================
# Validation Errors (400-type)
# ============================================

class ValidationError(ProfRateError):
    """Input validation failed"""

    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(message, code="VALIDATION_ERROR", details=details)


class InvalidInputError(ValidationError):
    """Input rejected before any processing (e.g. password length)"""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, field=field)
        self.code = "INVALID_INPUT"


class WeakPasswordError(ValidationError):
    """Password does not meet the strength policy"""

    def __init__(self, score: int, feedback: List[str]):
        super().__init__("Password is too weak", field="password")
        self.code = "WEAK_PASSWORD"
        self.details.update({"score": score, "feedback": feedback})


class HumanVerificationError(ProfRateError):
    """CAPTCHA token missing or rejected"""

    status_code = 400

    def __init__(self, message: str = "Human verification failed"):
        super().__init__(message, code="HUMAN_VERIFICATION_FAILED")


# ============================================
# Token Errors
# ============================================

class InvalidTokenError(ProfRateError):
    """Verification or reset token does not resolve to an account"""

    status_code = 400

    def __init__(self, message: str = "Invalid or already used token"):
        super().__init__(message, code="INVALID_TOKEN")


class ExpiredTokenError(ProfRateError):
    """Reset token is past its expiry"""

    status_code = 400

    def __init__(self, message: str = "Token has expired"):
        super().__init__(message, code="TOKEN_EXPIRED")


# ============================================
# Authentication & Authorization Errors
# ============================================

class AuthenticationError(ProfRateError):
    """User authentication failed"""

    status_code = 401

    def __init__(self, message: str = "Invalid username or password"):
        super().__init__(message, code="AUTH_FAILED")


class RoleMismatchError(AuthenticationError):
    """Caller asserted a role the account does not hold"""

    def __init__(self, expected_role: str):
        super().__init__(f"This account is not registered as {expected_role}")
        self.code = "ROLE_MISMATCH"
        self.details = {"role": expected_role}


class AuthorizationError(ProfRateError):
    """User not authorized for this action"""

    status_code = 403

    def __init__(self, message: str = "Not authorized"):
        super().__init__(message, code="NOT_AUTHORIZED")


class EmailNotVerifiedError(AuthorizationError):
    """Login refused until the email address is verified"""

    def __init__(self):
        super().__init__("Please verify your email address before signing in")
        self.code = "EMAIL_NOT_VERIFIED"


class CsrfError(AuthorizationError):
    """Missing or invalid anti-forgery token"""

    def __init__(self, message: str = "Invalid CSRF token"):
        super().__init__(message)
        self.code = "CSRF_FAILED"


# ============================================
# Resource Errors
# ============================================

class AccountNotFoundError(ProfRateError):
    """No account with that username"""

    status_code = 404

    def __init__(self, username: str):
        super().__init__(
            "No account found with that username",
            code="ACCOUNT_NOT_FOUND",
            details={"username": username}
        )


class ConflictError(ProfRateError):
    """Username or email already taken"""

    status_code = 409

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(message, code="CONFLICT", details=details)


# ============================================
# Throttling Errors (429-type)
# ============================================

class LockoutError(ProfRateError):
    """Too many failed logins for this username/IP"""

    status_code = 429

    def __init__(self, remaining_seconds: int):
        minutes = max(1, -(-remaining_seconds // 60))
        super().__init__(
            f"Too many failed login attempts. Try again in {minutes} minute(s).",
            code="ACCOUNT_LOCKED",
            details={"remaining_seconds": remaining_seconds}
        )
        self.remaining_seconds = remaining_seconds


class RegistrationInProgressError(ProfRateError):
    """A registration for the same username/email is already being processed"""

    status_code = 429

    def __init__(self):
        super().__init__(
            "A registration for this account is already in progress",
            code="REGISTRATION_IN_PROGRESS"
        )


# ============================================
# External Service Errors
# ============================================

class ExternalServiceError(ProfRateError):
    """CAPTCHA or persistence failure; never exposes transport details"""

    status_code = 500

    def __init__(self, service: str, message: str = "A verification error occurred. Please try again."):
        super().__init__(message, code="EXTERNAL_SERVICE_ERROR")
        self.service = service


# ============================================
# Helper function for API responses
# ============================================

def error_response(error: ProfRateError) -> Dict[str, Any]:
    """Convert exception to API error response format"""
    return {
        "success": False,
        "message": error.message,
        "error": error.to_dict()
    }
