"""
Owner session tokens.

Dashboard endpoints accept an HS256 JWT whose `sub` is the site owner id.
Tokens carry a fixed audience so a token minted for another service sharing
the secret is not accepted here.
"""

import os
from datetime import UTC, datetime, timedelta
from typing import Any, cast

from jose import JWTError, jwt

SECRET_KEY = os.environ.get("ZTA_JWT_SECRET", "dev-secret-unsafe")
ALGORITHM = "HS256"
TOKEN_AUDIENCE = "zta-owner"
ACCESS_TOKEN_EXPIRE_MINUTES = 60 * 24  # 24 hours


def create_access_token(
    data: dict[str, Any],
    expires_delta: timedelta | None = None,
    now_utc: datetime | None = None,
) -> str:
    """
    Create an owner JWT.

    Args:
        data: Claims to encode (`sub` owner id, optional `email`)
        expires_delta: Lifetime, defaults to ACCESS_TOKEN_EXPIRE_MINUTES
        now_utc: Issue time (for testing/determinism). Defaults to datetime.now(UTC).
    """
    issued_at = now_utc if now_utc is not None else datetime.now(UTC)
    lifetime = expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)

    claims = {**data, "aud": TOKEN_AUDIENCE, "iat": issued_at, "exp": issued_at + lifetime}
    encoded: str = jwt.encode(claims, SECRET_KEY, algorithm=ALGORITHM)
    return encoded


def create_owner_token(owner_id: str, email: str | None = None) -> str:
    claims: dict[str, Any] = {"sub": owner_id}
    if email:
        claims["email"] = email
    return create_access_token(claims)


def decode_access_token(token: str) -> dict[str, Any] | None:
    """Verified claims, or None for a bad signature, wrong audience or expiry."""
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM], audience=TOKEN_AUDIENCE)
    except JWTError:
        return None
    return cast(dict[str, Any], payload)
