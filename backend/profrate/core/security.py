from typing import Optional
from jose import JWTError, jwt
import asyncio
import bcrypt
import hashlib
import hmac
import re
import secrets
import time

from profrate.core.config import settings
from profrate.core.exceptions import InvalidInputError
from profrate.core.logging_config import logger

# bcrypt hashes look like $2b$12$<53 chars>; legacy hashes are unsalted SHA-256 hex
BCRYPT_PREFIXES = ("$2a$", "$2b$", "$2y$")
LEGACY_SHA256_PATTERN = re.compile(r"^[0-9a-f]{64}$")
BCRYPT_MAX_BYTES = 72
BENCHMARK_PASSWORD = "benchmark-password-for-cost-check"


class CredentialHasher:
    """
    One-way password hashing and verification.

    New hashes are bcrypt with a fixed cost factor. Verification also accepts
    the unsalted SHA-256 digests written by the first version of the site so
    those accounts can still log in and get upgraded on success.
    """

    def __init__(
        self,
        rounds: Optional[int] = None,
        min_length: Optional[int] = None,
        max_length: Optional[int] = None,
    ):
        self.rounds = rounds or settings.BCRYPT_ROUNDS
        self.min_length = min_length or settings.PASSWORD_MIN_LENGTH
        self.max_length = max_length or settings.PASSWORD_MAX_LENGTH

    def validate(self, password: str) -> None:
        """Raise InvalidInputError if the password cannot be hashed"""
        if not password or not password.strip():
            raise InvalidInputError("Password cannot be empty", field="password")
        if len(password) < self.min_length:
            raise InvalidInputError(
                f"Password must be at least {self.min_length} characters long",
                field="password"
            )
        if len(password) > self.max_length:
            raise InvalidInputError(
                f"Password must not exceed {self.max_length} characters",
                field="password"
            )

    @staticmethod
    def _encode(password: str) -> bytes:
        # Bcrypt has a 72 byte limit - truncate password if necessary
        return password.encode("utf-8")[:BCRYPT_MAX_BYTES]

    def hash_sync(self, password: str) -> str:
        self.validate(password)
        hashed = bcrypt.hashpw(self._encode(password), bcrypt.gensalt(rounds=self.rounds))
        return hashed.decode("utf-8")

    def verify_sync(self, password: str, hashed_password: str) -> bool:
        try:
            if not password or not hashed_password:
                return False

            if hashed_password.startswith(BCRYPT_PREFIXES):
                return bcrypt.checkpw(self._encode(password), hashed_password.encode("utf-8"))

            if LEGACY_SHA256_PATTERN.match(hashed_password):
                candidate = hashlib.sha256(password.encode("utf-8")).digest()
                return hmac.compare_digest(candidate, bytes.fromhex(hashed_password))

            return False
        except Exception as e:
            logger.error(f"[Security] Password verification error: {type(e).__name__}")
            return False

    async def hash_password(self, password: str) -> str:
        """Hash a password in a worker thread (bcrypt is CPU-bound)"""
        self.validate(password)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.hash_sync, password)

    async def verify_password(self, password: str, hashed_password: str) -> bool:
        """Verify a password in a worker thread; never raises"""
        try:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(None, self.verify_sync, password, hashed_password)
        except Exception as e:
            logger.error(f"[Security] Password verification dispatch error: {type(e).__name__}")
            return False

    def needs_rehash(self, hashed_password: str) -> bool:
        """True for legacy digests and bcrypt hashes with a different cost"""
        if not hashed_password or not hashed_password.startswith(BCRYPT_PREFIXES):
            return True
        try:
            cost = int(hashed_password.split("$")[2])
        except (IndexError, ValueError):
            return True
        return cost != self.rounds

    async def benchmark(self) -> float:
        """Hash once and log the elapsed time against the target"""
        start = time.perf_counter()
        await self.hash_password(BENCHMARK_PASSWORD)
        duration_ms = (time.perf_counter() - start) * 1000
        logger.log_performance(
            f"bcrypt hash (rounds={self.rounds}, target ~{settings.BCRYPT_TARGET_MS:.0f}ms)",
            duration_ms,
            threshold_ms=settings.BCRYPT_TARGET_MS * 5,
            bcrypt_rounds=self.rounds,
        )
        return duration_ms


def generate_token(nbytes: int = 32) -> str:
    """Generate a random hex token (256 bits by default)"""
    return secrets.token_hex(nbytes)


def hash_token(token: str) -> str:
    """Digest of a one-time token; only the digest is persisted"""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def constant_time_hex_equals(expected: str, supplied: str) -> bool:
    """Compare two hex strings as bytes without leaking the mismatch position"""
    try:
        expected_bytes = bytes.fromhex(expected)
        supplied_bytes = bytes.fromhex(supplied)
    except (TypeError, ValueError):
        return False
    if len(expected_bytes) != len(supplied_bytes):
        return False
    return hmac.compare_digest(expected_bytes, supplied_bytes)


def create_session_cookie(session_id: str) -> str:
    """Sign a session id for the session cookie"""
    payload = {"sid": session_id, "type": "session"}
    return jwt.encode(payload, settings.SESSION_SECRET_KEY, algorithm=settings.SESSION_ALGORITHM)


def decode_session_cookie(value: str) -> Optional[str]:
    """Return the session id from a signed cookie, or None if tampered"""
    if not value:
        return None
    try:
        payload = jwt.decode(value, settings.SESSION_SECRET_KEY, algorithms=[settings.SESSION_ALGORITHM])
    except JWTError:
        return None

    if payload.get("type") != "session":
        return None
    session_id = payload.get("sid")
    return session_id if isinstance(session_id, str) and session_id else None


# Shared hasher instance
credential_hasher = CredentialHasher()
