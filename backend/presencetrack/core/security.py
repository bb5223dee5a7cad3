import uuid
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import JWTError, jwt

from presencetrack.core.config import settings

ACCESS_TOKEN = "access"
REFRESH_TOKEN = "refresh"


def hash_password(plain: str) -> str:
    return bcrypt.hashpw(plain.encode(), bcrypt.gensalt()).decode()


def verify_password(plain: str, hashed: str) -> bool:
    # Seeded or imported users may have no password yet
    if not hashed:
        return False
    return bcrypt.checkpw(plain.encode(), hashed.encode())


def _encode(data: dict, token_type: str, lifetime: timedelta) -> str:
    claims = {**data, "type": token_type, "exp": datetime.now(timezone.utc) + lifetime}
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    lifetime = expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    return _encode(data, ACCESS_TOKEN, lifetime)


def create_refresh_token(data: dict) -> str:
    return _encode(data, REFRESH_TOKEN, timedelta(minutes=settings.REFRESH_TOKEN_EXPIRE_MINUTES))


def decode_token(token: str) -> dict:
    """Decode and validate JWT. Raises JWTError on failure."""
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])


def token_subject(token: str, token_type: str) -> uuid.UUID:
    """User id carried by a valid token of ``token_type``.

    Raises JWTError for a bad signature, an expired token, the wrong type or
    a missing/malformed subject.
    """
    payload = decode_token(token)
    if payload.get("type") != token_type:
        raise JWTError(f"expected a {token_type} token")
    try:
        return uuid.UUID(payload.get("sub") or "")
    except ValueError:
        raise JWTError("token subject is not a user id") from None
