"""
Credential helpers: bcrypt password hashing and HS256 bearer tokens.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any

import bcrypt
import jwt

from mzone.core.config import settings
from mzone.core.errors import AuthError, InternalError


def hash_password(password: str, rounds: Optional[int] = None) -> str:
    """Hash a password with bcrypt."""
    salt = bcrypt.gensalt(rounds=rounds or settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against a stored bcrypt hash."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


def _secret() -> str:
    if not settings.JWT_SECRET:
        raise InternalError("JWT_SECRET not configured")
    return settings.JWT_SECRET


def issue_token(user_id: str, email: str, now: Optional[datetime] = None) -> str:
    """Issue a bearer token for the user (sub = user id)."""
    issued = now or datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "email": email,
        "iat": int(issued.timestamp()),
        "exp": int((issued + timedelta(days=settings.JWT_EXPIRES_DAYS)).timestamp()),
    }
    return jwt.encode(payload, _secret(), algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> Dict[str, Any]:
    """
    Verify a bearer token and return its claims.

    Raises:
        AuthError (403): token invalid, expired, or missing the subject claim
    """
    try:
        claims = jwt.decode(
            token,
            _secret(),
            algorithms=[settings.JWT_ALGORITHM],
            options={"verify_signature": True, "verify_exp": True},
        )
    except jwt.InvalidTokenError:
        raise AuthError("Invalid or expired token", code="invalid_token", status_code=403)

    if not claims.get("sub"):
        raise AuthError("Invalid or expired token", code="invalid_token", status_code=403)
    return claims
