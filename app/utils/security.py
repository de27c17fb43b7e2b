"""JWT helpers for the bearer identity expected on every media endpoint."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from jose import JWTError, jwt
from pydantic import BaseModel, ValidationError

from app.config.settings import settings


class AuthenticationError(Exception):
    """Raised when a JWT cannot be decoded or is otherwise invalid."""


class TokenPayload(BaseModel):
    """Minimal payload structure embedded in JWT access tokens."""

    sub: str
    email: str
    exp: datetime
    iat: datetime | None = None


class Identity(BaseModel):
    """Verified caller identity handed to controllers."""

    email: str
    userId: str


def create_access_token(
    subject: str,
    email: str,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Generate a signed JWT access token for the provided subject."""

    now = datetime.now(timezone.utc)
    expires_delta = expires_delta or timedelta(
        minutes=settings.security.access_token_expires_minutes
    )
    to_encode: dict[str, Any] = {
        "sub": subject,
        "email": email,
        "exp": now + expires_delta,
        "iat": now,
    }

    secret = settings.security.jwt_secret_key.get_secret_value()
    return jwt.encode(
        to_encode,
        secret,
        algorithm=settings.security.jwt_algorithm,
    )


def decode_access_token(token: str) -> TokenPayload:
    """Decode and validate a JWT access token, returning its payload."""

    secret = settings.security.jwt_secret_key.get_secret_value()
    try:
        payload = jwt.decode(
            token, secret, algorithms=[settings.security.jwt_algorithm]
        )
        return TokenPayload.model_validate(payload)
    except (JWTError, ValidationError) as exc:
        raise AuthenticationError("Invalid authentication token") from exc


def verify_identity(token: str) -> Identity:
    """Return ``{email, userId}`` for a valid bearer token."""

    payload = decode_access_token(token)
    return Identity(email=payload.email, userId=payload.sub)


__all__ = [
    "AuthenticationError",
    "Identity",
    "TokenPayload",
    "create_access_token",
    "decode_access_token",
    "verify_identity",
]
