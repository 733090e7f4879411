from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from profrate.core.database import get_db
from profrate.core.exceptions import AuthenticationError
from profrate.core.logging_config import set_user_id
from profrate.models.user import User
from profrate.modules.auth.orchestrator import AuthOrchestrator
from profrate.modules.auth.password_reset import PasswordResetFlow
from profrate.modules.auth.repository import UserRepository
from profrate.modules.auth.sessions import session_manager
from profrate.modules.auth.verification import VerificationTokenFlow


def get_client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


async def get_user_repository(db: AsyncSession = Depends(get_db)) -> UserRepository:
    return UserRepository(db)


async def get_orchestrator(
    repository: UserRepository = Depends(get_user_repository)
) -> AuthOrchestrator:
    return AuthOrchestrator(repository)


async def get_verification_flow(
    repository: UserRepository = Depends(get_user_repository)
) -> VerificationTokenFlow:
    return VerificationTokenFlow(repository)


async def get_password_reset_flow(
    repository: UserRepository = Depends(get_user_repository)
) -> PasswordResetFlow:
    return PasswordResetFlow(repository)


async def get_current_user(
    request: Request,
    repository: UserRepository = Depends(get_user_repository)
) -> User:
    """Account bound to the caller's session"""
    session_id = session_manager.session_id_from_request(request)
    session = await session_manager.get(session_id)
    if not session or not session.get("user_id"):
        raise AuthenticationError("Not authenticated")

    user = await repository.get_by_id(session["user_id"])
    if not user:
        # Account removed while the session was live
        await session_manager.destroy(session_id)
        raise AuthenticationError("Not authenticated")

    set_user_id(str(user.id))
    return user
