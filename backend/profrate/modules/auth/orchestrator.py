"""
Login and registration state machines.

Each step either passes or raises a ProfRateError; the first failure ends
the request. Session handling stays in the endpoint layer so the
orchestrator can be exercised without HTTP.
"""

from datetime import datetime
from typing import Iterable, Optional, Set, Tuple

from sqlalchemy.exc import IntegrityError

from profrate.core.exceptions import (
    AccountNotFoundError,
    AuthenticationError,
    ConflictError,
    InvalidInputError,
    RegistrationInProgressError,
    RoleMismatchError,
    ValidationError,
)
from profrate.core.logging_config import logger, set_user_id
from profrate.core.security import CredentialHasher, credential_hasher
from profrate.models.user import User, UserRole
from profrate.modules.auth.human_verification import HumanVerificationGate, human_verification_gate
from profrate.modules.auth.login_attempts import LoginAttempt, LoginAttemptTracker, login_attempt_tracker
from profrate.modules.auth.repository import UserRepository
from profrate.modules.auth.validators import (
    check_input_lengths,
    enforce_password_policy,
    is_registrable_role,
    is_valid_email,
    is_valid_name,
    is_valid_username,
    normalize_email,
    normalize_username,
)
from profrate.modules.auth.verification import VerificationTokenFlow
from profrate.schemas.auth import UserLogin, UserRegister


class RegistrationGuard:
    """
    In-flight registrations keyed by username and by email.

    claim() checks and inserts without awaiting, so two coroutines on the
    same event loop can never both win the same key.
    """

    def __init__(self):
        self._in_flight: Set[str] = set()

    @staticmethod
    def keys_for(username: str, email: str) -> Tuple[str, str]:
        return f"username:{username}", f"email:{email}"

    def claim(self, keys: Iterable[str]) -> Tuple[str, ...]:
        keys = tuple(keys)
        if any(key in self._in_flight for key in keys):
            raise RegistrationInProgressError()
        self._in_flight.update(keys)
        return keys

    def release(self, keys: Iterable[str]) -> None:
        for key in keys:
            self._in_flight.discard(key)

    def is_pending(self, key: str) -> bool:
        return key in self._in_flight


registration_guard = RegistrationGuard()


class AuthOrchestrator:

    def __init__(
        self,
        repository: UserRepository,
        hasher: CredentialHasher = credential_hasher,
        tracker: LoginAttemptTracker = login_attempt_tracker,
        gate: HumanVerificationGate = human_verification_gate,
        guard: RegistrationGuard = registration_guard,
    ):
        self.repository = repository
        self.hasher = hasher
        self.tracker = tracker
        self.gate = gate
        self.guard = guard
        self.verification = VerificationTokenFlow(repository)

    @staticmethod
    def _reject_overlong(**inputs: Optional[str]) -> None:
        errors = check_input_lengths(inputs)
        if errors:
            field_name, message = next(iter(errors.items()))
            raise ValidationError(message, field=field_name)

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    async def login(self, credentials: UserLogin, client_ip: str) -> User:
        self._reject_overlong(username=credentials.username, password=credentials.password)
        username = normalize_username(credentials.username)
        if not is_valid_username(username):
            raise ValidationError("Invalid username format", field="username")

        attempt = await self.tracker.begin_attempt(username, client_ip)
        try:
            user = await self._authenticate(credentials, username, client_ip, attempt)
        finally:
            await attempt.release()

        await self._upgrade_hash(user, credentials.password)
        user.last_login = datetime.utcnow()
        await self.repository.commit()

        set_user_id(str(user.id))
        logger.log_auth_event(
            event="login", success=True, username=username,
            client_ip=client_ip, user_role=user.role.value
        )
        return user

    async def _authenticate(
        self, credentials: UserLogin, username: str, client_ip: str, attempt: LoginAttempt
    ) -> User:
        await self.gate.require(credentials.human_verification_token, client_ip)

        user = await self.repository.get_by_username(username)
        if not user:
            logger.log_auth_event(
                event="login", success=False, username=username,
                reason="Unknown username", client_ip=client_ip
            )
            raise AccountNotFoundError(username)

        if credentials.role is not None and credentials.role != user.role:
            logger.log_auth_event(
                event="login", success=False, username=username,
                reason="Role mismatch", client_ip=client_ip
            )
            raise RoleMismatchError(credentials.role.value)

        self.verification.ensure_login_allowed(user)

        if not await self.hasher.verify_password(credentials.password, user.hashed_password):
            failures = await attempt.fail()
            logger.log_auth_event(
                event="login", success=False, username=username,
                reason="Invalid password", client_ip=client_ip, recent_failures=failures
            )
            raise AuthenticationError()

        await attempt.succeed()
        return user

    async def _upgrade_hash(self, user: User, password: str) -> None:
        """Re-hash legacy or differently-costed hashes after a good login"""
        if not self.hasher.needs_rehash(user.hashed_password):
            return
        try:
            user.hashed_password = await self.hasher.hash_password(password)
            logger.info(f"[Auth] Upgraded password hash for {user.username}")
        except InvalidInputError as e:
            # Legacy passwords may predate the length policy
            logger.warning(f"[Auth] Hash upgrade skipped for {user.username}: {e.message}")

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def _validate_registration(self, data: UserRegister) -> Tuple[str, str]:
        self._reject_overlong(
            username=data.username,
            password=data.password,
            email=data.email,
            first_name=data.first_name,
            last_name=data.last_name,
        )

        username = normalize_username(data.username)
        email = normalize_email(data.email)

        if not is_valid_username(username):
            raise ValidationError(
                "Username must be 3-30 characters: letters, numbers, '.', '_', '-' or '@', "
                "and cannot start with '.'",
                field="username"
            )
        if not is_valid_email(email):
            raise ValidationError("Invalid email address", field="email")
        if not is_valid_name(data.first_name):
            raise ValidationError("Invalid first name", field="first_name")
        if not is_valid_name(data.last_name):
            raise ValidationError("Invalid last name", field="last_name")
        if not is_registrable_role(data.role):
            raise ValidationError("This role cannot be chosen at registration", field="role")

        enforce_password_policy(data.password, self.hasher)

        return username, email

    async def register(self, data: UserRegister, client_ip: str) -> Tuple[User, str]:
        """Create an unverified account; returns it with its raw verification token"""
        username, email = self._validate_registration(data)

        keys = self.guard.claim(self.guard.keys_for(username, email))
        try:
            await self.gate.require(data.human_verification_token, client_ip)

            if await self.repository.get_by_username(username):
                raise ConflictError("Username already taken", field="username")
            if await self.repository.get_by_email(email):
                raise ConflictError("Email already registered", field="email")

            hashed_password = await self.hasher.hash_password(data.password)
            user = User(
                username=username,
                email=email,
                first_name=data.first_name,
                last_name=data.last_name,
                hashed_password=hashed_password,
                role=UserRole(data.role),
            )
            token = self.verification.issue_verification_token(user)

            try:
                await self.repository.add(user)
                await self.repository.commit()
            except IntegrityError:
                await self.repository.rollback()
                logger.warning(f"[Auth] Concurrent registration collided for {username}")
                raise ConflictError("Username or email already registered")
        except Exception as e:
            logger.log_auth_event(
                event="register", success=False, username=username,
                reason=getattr(e, "message", type(e).__name__), client_ip=client_ip
            )
            raise
        finally:
            self.guard.release(keys)

        logger.log_auth_event(
            event="register", success=True, username=username,
            client_ip=client_ip, user_role=user.role.value
        )
        return user, token

    # ------------------------------------------------------------------
    # Change password
    # ------------------------------------------------------------------

    async def change_password(self, user: User, current_password: str, new_password: str) -> User:
        self._reject_overlong(password=new_password)

        if not await self.hasher.verify_password(current_password, user.hashed_password):
            logger.log_auth_event(
                event="change_password", success=False, username=user.username,
                reason="Current password incorrect"
            )
            raise AuthenticationError("Current password is incorrect")

        enforce_password_policy(new_password, self.hasher)

        user.hashed_password = await self.hasher.hash_password(new_password)
        await self.repository.commit()

        logger.log_auth_event(event="change_password", success=True, username=user.username)
        return user
