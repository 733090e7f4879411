from pydantic_settings import BaseSettings
from typing import List, Any
import json


def parse_cors_origins(v: Any) -> List[str]:
    """Parse CORS origins from string or list"""
    if isinstance(v, list):
        return v
    if isinstance(v, str):
        # Try JSON parsing first
        if v.startswith('['):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                pass
        # Fall back to comma-separated
        return [origin.strip() for origin in v.split(',') if origin.strip()]
    return []


class Settings(BaseSettings):
    """Application settings - all configurable via environment variables"""

    # ==========================================
    # Application
    # ==========================================
    APP_NAME: str = "ProfRate Auth"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    API_PREFIX: str = "/api"

    # Server Configuration
    SERVER_HOST: str = "0.0.0.0"
    SERVER_PORT: int = 8000

    # ==========================================
    # Database
    # ==========================================
    DATABASE_URL: str = "sqlite+aiosqlite:///./profrate.db"
    DB_ECHO: bool = False

    # ==========================================
    # Ephemeral state (sessions, CSRF tokens, login attempts)
    # ==========================================
    STATE_BACKEND: str = "memory"  # "memory" (process-local) or "redis" (shared)
    REDIS_URL: str = "redis://localhost:6379/0"
    STATE_SWEEP_INTERVAL_SECONDS: int = 300

    # ==========================================
    # Sessions
    # ==========================================
    SESSION_SECRET_KEY: str = "CHANGE_ME"
    SESSION_ALGORITHM: str = "HS256"
    SESSION_COOKIE_NAME: str = "profrate_session"
    SESSION_TTL_SECONDS: int = 7 * 24 * 60 * 60  # 1 week
    SESSION_COOKIE_SECURE: bool = False  # Forced on for HTTPS requests

    # ==========================================
    # Password hashing
    # ==========================================
    BCRYPT_ROUNDS: int = 12  # ~100ms per hash on reference hardware; 4 for tests
    BCRYPT_TARGET_MS: float = 100.0
    PASSWORD_MIN_LENGTH: int = 8
    PASSWORD_MAX_LENGTH: int = 128

    # ==========================================
    # Login lockout
    # ==========================================
    LOCKOUT_THRESHOLD: int = 5
    LOCKOUT_WINDOW_SECONDS: int = 15 * 60
    LOCKOUT_HISTORY_LIMIT: int = 10
    LOCKOUT_HISTORY_HORIZON_SECONDS: int = 24 * 60 * 60

    # ==========================================
    # CSRF
    # ==========================================
    CSRF_TOKEN_TTL_SECONDS: int = 60 * 60
    CSRF_SINGLE_USE: bool = True
    CSRF_HEADER_NAME: str = "X-CSRF-Token"

    # ==========================================
    # Account tokens
    # ==========================================
    RESET_TOKEN_TTL_SECONDS: int = 24 * 60 * 60

    # ==========================================
    # Human verification (reCAPTCHA compatible)
    # ==========================================
    HUMAN_VERIFICATION_ENABLED: bool = False
    HUMAN_VERIFICATION_SECRET: str = ""
    HUMAN_VERIFICATION_URL: str = "https://www.google.com/recaptcha/api/siteverify"
    HUMAN_VERIFICATION_TIMEOUT: float = 10.0  # seconds
    HUMAN_VERIFICATION_MIN_SCORE: float = 0.5

    # ==========================================
    # Rate Limiting
    # ==========================================
    RATE_LIMIT_ENABLED: bool = True
    REGISTER_RATE_LIMIT: str = "3/hour"
    FORGOT_PASSWORD_RATE_LIMIT: str = "3/minute"

    # ==========================================
    # Email
    # ==========================================
    SMTP_HOST: str = "smtp.gmail.com"
    SMTP_PORT: int = 587
    SMTP_USER: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_TIMEOUT: float = 10.0
    EMAIL_FROM: str = "noreply@profrate.app"
    EMAIL_FROM_NAME: str = "ProfRate Support"

    # ==========================================
    # Frontend URL (for links in emails)
    # ==========================================
    FRONTEND_URL: str = "http://localhost:5173"

    # ==========================================
    # CORS (stored as comma-separated string, parsed to list)
    # ==========================================
    CORS_ORIGINS_STR: str = "http://localhost:5173,http://127.0.0.1:5173"

    @property
    def CORS_ORIGINS(self) -> List[str]:
        """Parse CORS origins from comma-separated string"""
        return parse_cors_origins(self.CORS_ORIGINS_STR)

    # ==========================================
    # Logging
    # ==========================================
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

    def is_production(self) -> bool:
        """Check if running in production mode"""
        return self.ENVIRONMENT == "production"


# Create settings instance
settings = Settings()
