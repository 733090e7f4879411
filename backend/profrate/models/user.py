from sqlalchemy import Column, String, Boolean, DateTime, Enum as SQLEnum
from datetime import datetime
import enum

from profrate.core.database import Base
from profrate.core.types import GUID, generate_uuid


class UserRole(str, enum.Enum):
    """User roles"""
    STUDENT = "student"  # standard user
    TEACHER = "teacher"  # privileged user
    ADMIN = "admin"


class User(Base):
    """Account: identity, credential and verification status"""
    __tablename__ = "users"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    # Stored lower-case so uniqueness and lookups are case-insensitive
    username = Column(String(30), unique=True, index=True, nullable=False)
    email = Column(String(254), unique=True, index=True, nullable=False)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    # Algorithm-tagged hash: bcrypt ($2b$...) or legacy unsalted SHA-256 hex
    hashed_password = Column(String(255), nullable=False)

    role = Column(SQLEnum(UserRole), default=UserRole.STUDENT, nullable=False)

    # Email verification
    email_verified = Column(Boolean, default=False, nullable=False)
    verification_token_hash = Column(String(64), unique=True, index=True, nullable=True)

    # Password reset fields; set only while a reset is pending
    reset_token_hash = Column(String(64), unique=True, index=True, nullable=True)
    reset_token_expires = Column(DateTime, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    last_login = Column(DateTime, nullable=True)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def has_pending_reset(self) -> bool:
        return self.reset_token_hash is not None

    def __repr__(self):
        return f"<User {self.username}>"
