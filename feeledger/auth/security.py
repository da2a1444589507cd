"""Password hashing, admin access tokens and reset OTPs."""

import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from uuid import UUID

import bcrypt
from jose import JWTError, jwt

from feeledger.core.config import settings

OTP_DIGITS = 6


def hash_password(plain_password: str) -> str:
    hashed = bcrypt.hashpw(plain_password.encode("utf-8"), bcrypt.gensalt())
    return hashed.decode("utf-8")


def verify_password(plain_password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Stored hash is not a bcrypt hash
        return False


def create_access_token(admin_id: UUID, email: str, expires_minutes: Optional[int] = None) -> str:
    """Bearer token for the admin; `sub` carries the admin id."""
    if expires_minutes is None:
        expires_minutes = settings.access_token_expire_minutes
    claims: Dict[str, Any] = {
        "sub": str(admin_id),
        "email": email,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=expires_minutes),
    }
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Optional[UUID]:
    """Admin id from a valid, unexpired token; None for anything else."""
    try:
        claims = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None
    subject = claims.get("sub")
    if not subject:
        return None
    try:
        return UUID(subject)
    except ValueError:
        return None


def generate_otp() -> str:
    """Six digit one-time password, never starting with 0."""
    low = 10 ** (OTP_DIGITS - 1)
    return str(low + secrets.randbelow(9 * low))
