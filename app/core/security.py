"""
Credentials and tokens

Passwords are bcrypt hashes. Access and refresh tokens are JWTs that differ
only in their "type" claim and lifetime; each carries a JTI so the refresh
token row (stored as a sha256 digest) can be revoked.
"""
import hashlib
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
from jose import JWTError, jwt

from app.core.config import settings

ACCESS_TOKEN = "access"
REFRESH_TOKEN = "refresh"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))


def get_password_hash(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def hash_token(token: str) -> str:
    """Digest stored in place of a refresh token."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _issue_token(user_id: int, token_type: str, lifetime: timedelta) -> str:
    now = datetime.now(timezone.utc)
    claims = {
        "sub": str(user_id),
        "type": token_type,
        "jti": str(uuid.uuid4()),
        "iat": now,
        "exp": now + lifetime,
    }
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def create_access_token(user_id: int, expires_delta: Optional[timedelta] = None) -> str:
    lifetime = expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    return _issue_token(user_id, ACCESS_TOKEN, lifetime)


def create_refresh_token(user_id: int) -> str:
    return _issue_token(user_id, REFRESH_TOKEN, timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS))


def decode_token(token: str, token_type: str = ACCESS_TOKEN) -> Optional[int]:
    """
    Validate a token of the given type and return its user id.

    Returns None for bad signatures, expired tokens, the wrong token type
    or a non-numeric subject.
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None

    if payload.get("type") != token_type:
        return None

    try:
        return int(payload.get("sub"))
    except (TypeError, ValueError):
        return None
