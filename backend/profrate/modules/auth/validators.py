"""
Credential format and strength rules.

Everything here except enforce_password_policy() is a pure function: no I/O,
no exceptions on malformed input. Callers decide which failures become
ValidationError.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

from profrate.core.exceptions import WeakPasswordError
from profrate.models.user import UserRole

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 30
EMAIL_MAX_LENGTH = 254
NAME_MAX_LENGTH = 100
STRONG_PASSWORD_SCORE = 40

USERNAME_PATTERN = re.compile(r"^[a-z0-9._\-@]+$")
USERNAME_DISALLOWED = re.compile(r"[^a-z0-9._\-@]")
EMAIL_PATTERN = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+"
    r"@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)+$"
)
NAME_PATTERN = re.compile(r"^[a-zA-Z\s\-']+$")
SPECIAL_CHAR_PATTERN = re.compile(r"[!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>/?~`]")

COMMON_PASSWORD_PATTERNS = (
    "password",
    "123456",
    "qwerty",
    "admin",
    "abc123",
    "letmein",
    "welcome",
    "iloveyou",
)

# Roles a visitor may pick at sign-up; admins are promoted by another admin
REGISTRABLE_ROLES = frozenset({UserRole.STUDENT, UserRole.TEACHER})

MAX_INPUT_LENGTHS: Dict[str, int] = {
    "username": USERNAME_MAX_LENGTH,
    "password": 128,
    "email": EMAIL_MAX_LENGTH,
    "first_name": NAME_MAX_LENGTH,
    "last_name": NAME_MAX_LENGTH,
}


@dataclass
class PasswordStrength:
    score: int
    is_strong: bool
    feedback: List[str] = field(default_factory=list)


def normalize_username(username: Optional[str]) -> str:
    """Case-fold for storage and lookup"""
    if not isinstance(username, str):
        return ""
    return username.strip().lower()


def normalize_email(email: Optional[str]) -> str:
    if not isinstance(email, str):
        return ""
    return email.strip().lower()


def is_valid_username(username: Optional[str]) -> bool:
    if not isinstance(username, str):
        return False
    if not USERNAME_MIN_LENGTH <= len(username) <= USERNAME_MAX_LENGTH:
        return False
    if username.startswith("."):
        return False
    return bool(USERNAME_PATTERN.match(username))


def is_valid_email(email: Optional[str]) -> bool:
    if not isinstance(email, str) or not email:
        return False
    if len(email) > EMAIL_MAX_LENGTH:
        return False
    return bool(EMAIL_PATTERN.match(email))


def is_valid_name(name: Optional[str]) -> bool:
    """First/last names are optional; when present they must look like a name"""
    if name is None:
        return True
    if not isinstance(name, str) or not name or len(name) > NAME_MAX_LENGTH:
        return False
    return bool(NAME_PATTERN.match(name))


def is_valid_role(role) -> bool:
    try:
        UserRole(role)
    except ValueError:
        return False
    return True


def is_registrable_role(role) -> bool:
    return is_valid_role(role) and UserRole(role) in REGISTRABLE_ROLES


def score_password_strength(password: Optional[str]) -> PasswordStrength:
    """
    Additive 0-100 score.

    Length >= 8 (+20), >= 12 (+10), >= 16 (+10); lowercase, uppercase, digit
    and special character each +15; a common pattern anywhere in the password
    costs 20. A password is strong at 40 or above.
    """
    if not isinstance(password, str):
        password = ""

    score = 0
    feedback: List[str] = []

    if len(password) >= 8:
        score += 20
    else:
        feedback.append("Password must be at least 8 characters long")
    if len(password) >= 12:
        score += 10
    else:
        feedback.append("Use 12 or more characters for a stronger password")
    if len(password) >= 16:
        score += 10
    else:
        feedback.append("Use 16 or more characters for the strongest passwords")

    if re.search(r"[a-z]", password):
        score += 15
    else:
        feedback.append("Add lowercase letters (a-z)")

    if re.search(r"[A-Z]", password):
        score += 15
    else:
        feedback.append("Add uppercase letters (A-Z)")

    if re.search(r"\d", password):
        score += 15
    else:
        feedback.append("Add numbers (0-9)")

    if SPECIAL_CHAR_PATTERN.search(password):
        score += 15
    else:
        feedback.append("Add special characters (!@#$%^&*)")

    lowered = password.lower()
    if any(pattern in lowered for pattern in COMMON_PASSWORD_PATTERNS):
        score -= 20
        feedback.append("Avoid common patterns or dictionary words")

    score = max(0, min(100, score))
    is_strong = score >= STRONG_PASSWORD_SCORE
    if not is_strong and not feedback:
        feedback.append("Password is too weak")

    return PasswordStrength(score=score, is_strong=is_strong, feedback=feedback)


def sanitize_username(username: Optional[str]) -> str:
    """Best-effort normalisation: lower-case, allowed alphabet only, no leading dots"""
    if not isinstance(username, str):
        return ""
    sanitized = USERNAME_DISALLOWED.sub("", username.lower())
    return sanitized.lstrip(".")


def check_input_lengths(
    inputs: Mapping[str, Optional[str]],
    limits: Mapping[str, int] = MAX_INPUT_LENGTHS,
) -> Dict[str, str]:
    """Return {field: error} for over-long values or embedded NUL bytes"""
    errors: Dict[str, str] = {}
    for field_name, max_length in limits.items():
        value = inputs.get(field_name)
        if value is None or value == "":
            continue
        if not isinstance(value, str):
            errors[field_name] = f"{field_name} must be a string"
        elif len(value) > max_length:
            errors[field_name] = f"{field_name} must not exceed {max_length} characters"
        elif "\0" in value:
            errors[field_name] = f"{field_name} contains invalid characters"
    return errors


def enforce_password_policy(password: str, hasher) -> PasswordStrength:
    """
    Length policy of the hasher, then the strength score. Applied wherever a
    new password is chosen: registration, change and reset.
    """
    hasher.validate(password)
    strength = score_password_strength(password)
    if not strength.is_strong:
        raise WeakPasswordError(strength.score, strength.feedback)
    return strength
