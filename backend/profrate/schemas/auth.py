from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime

from profrate.models.user import UserRole

# Upper bounds applied before any business logic runs
MAX_USERNAME_LENGTH = 30
MAX_EMAIL_LENGTH = 254
MAX_PASSWORD_LENGTH = 128
MAX_NAME_LENGTH = 100
MAX_TOKEN_LENGTH = 4096


class CamelModel(BaseModel):
    """Request/response model that accepts camelCase aliases and field names"""

    class Config:
        populate_by_name = True


# ============================================
# Requests
# ============================================

class UserLogin(CamelModel):
    username: str = Field(..., min_length=1, max_length=MAX_USERNAME_LENGTH)
    password: str = Field(..., min_length=1, max_length=MAX_PASSWORD_LENGTH)
    role: Optional[UserRole] = None
    human_verification_token: Optional[str] = Field(
        None, alias="verificationToken", max_length=MAX_TOKEN_LENGTH
    )


class UserRegister(CamelModel):
    username: str = Field(..., min_length=1, max_length=MAX_USERNAME_LENGTH)
    email: str = Field(..., min_length=1, max_length=MAX_EMAIL_LENGTH)
    password: str = Field(..., min_length=1, max_length=MAX_PASSWORD_LENGTH)
    first_name: Optional[str] = Field(None, alias="firstName", max_length=MAX_NAME_LENGTH)
    last_name: Optional[str] = Field(None, alias="lastName", max_length=MAX_NAME_LENGTH)
    role: UserRole = UserRole.STUDENT
    human_verification_token: Optional[str] = Field(
        None, alias="verificationToken", max_length=MAX_TOKEN_LENGTH
    )


class EmailRequest(CamelModel):
    """Body of forgot-password, forgot-username and resend-verification"""
    email: str = Field(..., min_length=1, max_length=MAX_EMAIL_LENGTH)


class ResetPasswordRequest(CamelModel):
    token: str = Field(..., min_length=1, max_length=MAX_TOKEN_LENGTH)
    new_password: str = Field(..., alias="newPassword", min_length=1, max_length=MAX_PASSWORD_LENGTH)


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(..., alias="currentPassword", min_length=1, max_length=MAX_PASSWORD_LENGTH)
    new_password: str = Field(..., alias="newPassword", min_length=1, max_length=MAX_PASSWORD_LENGTH)


# ============================================
# Responses
# ============================================

class UserResponse(CamelModel):
    """Public view of an account; never carries the password hash or token digests"""
    id: str
    username: str
    email: str
    first_name: Optional[str] = Field(None, alias="firstName")
    last_name: Optional[str] = Field(None, alias="lastName")
    role: UserRole
    email_verified: bool = Field(..., alias="emailVerified")
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    last_login: Optional[datetime] = Field(None, alias="lastLogin")

    class Config:
        populate_by_name = True
        from_attributes = True


class AuthResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    user: UserResponse


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class CsrfTokenResponse(BaseModel):
    token: str
