import hmac
from typing import Optional

from passlib.context import CryptContext

from .config import Settings

# -----------------------------
# Admin secret helpers
# -----------------------------

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    """Return a secure bcrypt hash of *password*."""
    return pwd_context.hash(password)


def verify_admin_password(settings: Settings, attempt: Optional[str]) -> bool:
    """Check *attempt* against the configured admin secret.

    A configured ``admin_password_hash`` takes precedence over the plain
    ``admin_password``. With neither configured nobody can join as admin.
    """
    if attempt is None:
        return False
    if settings.admin_password_hash:
        try:
            return pwd_context.verify(attempt, settings.admin_password_hash)
        except ValueError:
            # not a hash passlib recognises
            return False
    if settings.admin_password is None:
        return False
    return hmac.compare_digest(attempt.encode(), settings.admin_password.encode())


__all__ = [
    "pwd_context",
    "hash_password",
    "verify_admin_password",
]
