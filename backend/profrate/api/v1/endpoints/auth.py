from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, Response

from profrate.core.logging_config import logger
from profrate.core.rate_limiter import email_rate_limit, register_rate_limit
from profrate.models.user import User
from profrate.modules.auth.csrf import csrf_token_store
from profrate.modules.auth.dependencies import (
    get_client_ip,
    get_current_user,
    get_orchestrator,
    get_password_reset_flow,
    get_user_repository,
    get_verification_flow,
)
from profrate.modules.auth.orchestrator import AuthOrchestrator
from profrate.modules.auth.password_reset import PasswordResetFlow
from profrate.modules.auth.repository import UserRepository
from profrate.modules.auth.sessions import session_manager
from profrate.modules.auth.validators import normalize_email
from profrate.modules.auth.verification import VerificationTokenFlow
from profrate.schemas.auth import (
    AuthResponse,
    ChangePasswordRequest,
    CsrfTokenResponse,
    EmailRequest,
    MessageResponse,
    ResetPasswordRequest,
    UserLogin,
    UserRegister,
    UserResponse,
)
from profrate.services.email_service import email_service

# Identical for known and unknown addresses
FORGOT_PASSWORD_MESSAGE = "If an account with that email exists, a password reset link has been sent."
FORGOT_USERNAME_MESSAGE = "If an account with that email exists, your username has been sent to it."
RESEND_VERIFICATION_MESSAGE = "If an unverified account with that email exists, a new verification link has been sent."

router = APIRouter()


async def revoke_user_sessions(user: User, keep: Optional[str] = None) -> None:
    """End the user's other sessions after a credential change"""
    for session_id in await session_manager.destroy_user_sessions(str(user.id), keep=keep):
        await csrf_token_store.revoke(session_id)


@router.get("/csrf-token", response_model=CsrfTokenResponse)
async def get_csrf_token(request: Request, response: Response):
    """Issue a CSRF token bound to the caller's session (creating an anonymous one if needed)"""
    session_id, created = await session_manager.ensure_session(request)
    token = await csrf_token_store.issue(session_id)
    if created:
        session_manager.set_cookie(response, request, session_id)
    return CsrfTokenResponse(token=token)


@router.post("/login", response_model=AuthResponse)
async def login(
    request: Request,
    response: Response,
    credentials: UserLogin,
    orchestrator: AuthOrchestrator = Depends(get_orchestrator),
):
    user = await orchestrator.login(credentials, get_client_ip(request))

    # Never promote the pre-login session: its id may have been planted
    previous_session_id = session_manager.session_id_from_request(request)
    session_id = await session_manager.rotate(previous_session_id, user)
    if previous_session_id:
        await csrf_token_store.revoke(previous_session_id)
    session_manager.set_cookie(response, request, session_id)

    return AuthResponse(message="Login successful", user=UserResponse.model_validate(user))


@router.post("/register", response_model=AuthResponse)
@register_rate_limit()
async def register(
    request: Request,
    user_data: UserRegister,
    background_tasks: BackgroundTasks,
    orchestrator: AuthOrchestrator = Depends(get_orchestrator),
):
    """Create an unverified account and email its verification link. Does not sign in."""
    user, verification_token = await orchestrator.register(user_data, get_client_ip(request))

    background_tasks.add_task(
        email_service.send_verification_email,
        to_email=user.email,
        username=user.username,
        verification_token=verification_token,
    )
    logger.info(f"[Auth] Verification email queued for {user.username}")

    return AuthResponse(
        message="Registration successful. Please check your email to verify your account.",
        user=UserResponse.model_validate(user),
    )


@router.get("/verify-email", response_model=AuthResponse)
async def verify_email(
    token: str = Query(..., min_length=1, max_length=4096),
    flow: VerificationTokenFlow = Depends(get_verification_flow),
):
    user = await flow.verify(token)
    return AuthResponse(
        message="Email verified successfully! You can now log in.",
        user=UserResponse.model_validate(user),
    )


@router.post("/resend-verification", response_model=MessageResponse)
@email_rate_limit()
async def resend_verification(
    request: Request,
    payload: EmailRequest,
    background_tasks: BackgroundTasks,
    flow: VerificationTokenFlow = Depends(get_verification_flow),
    repository: UserRepository = Depends(get_user_repository),
):
    user = await repository.get_by_email(normalize_email(payload.email))
    if user and not user.email_verified:
        token = await flow.reissue(user)
        background_tasks.add_task(
            email_service.send_verification_email,
            to_email=user.email,
            username=user.username,
            verification_token=token,
        )

    return MessageResponse(message=RESEND_VERIFICATION_MESSAGE)


@router.post("/forgot-password", response_model=MessageResponse)
@email_rate_limit()
async def forgot_password(
    request: Request,
    payload: EmailRequest,
    background_tasks: BackgroundTasks,
    flow: PasswordResetFlow = Depends(get_password_reset_flow),
):
    issued = await flow.request_reset(payload.email)
    if issued:
        user, token = issued
        background_tasks.add_task(
            email_service.send_password_reset_email,
            to_email=user.email,
            username=user.username,
            reset_token=token,
        )

    return MessageResponse(message=FORGOT_PASSWORD_MESSAGE)


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(
    payload: ResetPasswordRequest,
    flow: PasswordResetFlow = Depends(get_password_reset_flow),
):
    user = await flow.consume_reset(payload.token, payload.new_password)
    await revoke_user_sessions(user)
    return MessageResponse(message="Password has been reset. You can now log in.")


@router.post("/forgot-username", response_model=MessageResponse)
@email_rate_limit()
async def forgot_username(
    request: Request,
    payload: EmailRequest,
    background_tasks: BackgroundTasks,
    repository: UserRepository = Depends(get_user_repository),
):
    user = await repository.get_by_email(normalize_email(payload.email))
    if user:
        background_tasks.add_task(
            email_service.send_username_reminder_email,
            to_email=user.email,
            username=user.username,
        )
        logger.log_auth_event(event="forgot_username", success=True, username=user.username)

    return MessageResponse(message=FORGOT_USERNAME_MESSAGE)


@router.get("/user", response_model=UserResponse)
async def get_me(current_user: User = Depends(get_current_user)):
    return UserResponse.model_validate(current_user)


@router.post("/logout", response_model=MessageResponse)
async def logout(request: Request, response: Response):
    session_id = session_manager.session_id_from_request(request)
    session = await session_manager.get(session_id)
    if session_id:
        await csrf_token_store.revoke(session_id)
        await session_manager.destroy(session_id)
    session_manager.clear_cookie(response)

    if session and session.get("user_id"):
        logger.log_auth_event(event="logout", success=True, user_id=session["user_id"])
    return MessageResponse(message="Logged out")


@router.post("/change-password", response_model=MessageResponse)
async def change_password(
    request: Request,
    payload: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    orchestrator: AuthOrchestrator = Depends(get_orchestrator),
):
    await orchestrator.change_password(current_user, payload.current_password, payload.new_password)
    await revoke_user_sessions(current_user, keep=session_manager.session_id_from_request(request))
    return MessageResponse(message="Password changed successfully")
