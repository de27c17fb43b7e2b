"""Utility helpers."""

from .security import (
    AuthenticationError,
    Identity,
    create_access_token,
    decode_access_token,
    verify_identity,
)

__all__ = [
    "AuthenticationError",
    "Identity",
    "create_access_token",
    "decode_access_token",
    "verify_identity",
]
