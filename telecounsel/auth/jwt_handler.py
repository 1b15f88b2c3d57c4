from datetime import datetime, timedelta, timezone

import jwt

from telecounsel.core import config


def create_access_token(subject: str, role: str | None = None, expires_minutes: int | None = None) -> str:
    """Sign a bearer token for a user id.

    ``role`` is optional; when present it must still match the user's stored role.
    """
    issued_at = datetime.now(timezone.utc)
    if expires_minutes is None:
        expires_minutes = config.JWT_EXPIRES_MINUTES
    claims = {
        "sub": str(subject),
        "iat": issued_at,
        "exp": issued_at + timedelta(minutes=expires_minutes),
    }
    if role is not None:
        claims["role"] = getattr(role, "value", role)
    return jwt.encode(claims, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    return jwt.decode(
        token,
        config.JWT_SECRET_KEY,
        algorithms=[config.JWT_ALGORITHM],
        options={"require": ["sub", "exp"]},
    )
