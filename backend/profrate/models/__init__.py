# Re-export all models for convenient imports
from profrate.models.user import User, UserRole

__all__ = ["User", "UserRole"]
