"""JWT helpers.

Tokens are minted by the identity service; this API only needs to verify
them. ``create_access_token`` exists for tooling and tests.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt

from src.config.settings import settings


@dataclass
class TokenData:
    """Decoded access token claims."""

    user_id: str
    exp: datetime | None = None


def create_access_token(user_id: str, expires_delta: timedelta | None = None) -> str:
    """Create a signed access token for ``user_id``."""
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    payload = {"sub": user_id, "exp": expire, "type": "access"}
    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> TokenData | None:
    """Decode an access token, returning None when invalid or expired."""
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except jwt.PyJWTError:
        return None

    if payload.get("type") != "access" or not payload.get("sub"):
        return None

    exp = payload.get("exp")
    return TokenData(
        user_id=payload["sub"],
        exp=datetime.fromtimestamp(exp, tz=timezone.utc) if exp else None,
    )
