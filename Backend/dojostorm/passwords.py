"""
Password hashing for staff users and portal members.

Hashes are Argon2 through passlib. A stored value passlib cannot parse
(imported legacy rows, truncated columns) fails verification instead of
raising, so a bad row reads as "wrong password" rather than a 500.
"""

import logging
from typing import Optional

from passlib.context import CryptContext

from .core.responses import ValidationFailed

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8

pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")


def check_password_policy(password: Optional[str]) -> str:
    """Return ``password`` if it may be set, else raise ValidationFailed."""
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationFailed(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    return password


def hash_password(password: str) -> str:
    if not password:
        raise ValueError("Cannot hash an empty password")
    return pwd_context.hash(password)


def verify_password(password: Optional[str], password_hash: Optional[str]) -> bool:
    if not password or not password_hash:
        return False
    try:
        return pwd_context.verify(password, password_hash)
    except ValueError:
        # passlib's UnknownHashError / MalformedHashError are ValueErrors
        logger.warning("Stored password hash is not in a recognized format")
        return False
