"""
Password hashing for stored users.

Authentication and session handling live outside this service; the store only
needs to persist a hash rather than the raw password.
"""

import logging

from passlib.context import CryptContext

logger = logging.getLogger(__name__)

# bcrypt truncates passwords at 72 bytes; enforce to avoid silent truncation.
MAX_PASSWORD_BYTES = 72

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def is_password_too_long(password: str) -> bool:
    """Return True if password exceeds bcrypt 72-byte limit."""
    return len(password.encode("utf-8")) > MAX_PASSWORD_BYTES


def get_password_hash(password: str) -> str:
    if is_password_too_long(password):
        raise ValueError("Password exceeds bcrypt 72-byte limit")
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    if is_password_too_long(plain_password):
        logger.warning("Password check failed: password exceeds bcrypt 72-byte limit")
        return False
    return pwd_context.verify(plain_password, hashed_password)
