"""
JWT verification for access tokens issued by the StackIt auth service.

Tokens are HS256-signed with a shared secret. This service never issues
tokens; it only validates them and reads the user id from ``sub``.
"""

from __future__ import annotations

from typing import Any

import jwt

from stackit.config import get_settings


def verify_token(token: str, expected_type: str = "access") -> dict[str, Any]:
    """
    Verify and decode a JWT token.

    Args:
        token: The encoded JWT string.
        expected_type: Expected token type (only "access" is accepted by the API).

    Returns:
        Decoded payload dictionary.

    Raises:
        jwt.InvalidTokenError: If the token is invalid, expired, or wrong type.
    """
    settings = get_settings()
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            issuer=settings.jwt_issuer,
            options={"require": ["sub", "exp"]},
        )
    except jwt.ExpiredSignatureError:
        msg = "Token has expired"
        raise jwt.InvalidTokenError(msg) from None

    if payload.get("type", "access") != expected_type:
        msg = f"Expected token type '{expected_type}', got '{payload.get('type')}'"
        raise jwt.InvalidTokenError(msg)

    try:
        int(payload["sub"])
    except (TypeError, ValueError):
        msg = "Token subject is not a user id"
        raise jwt.InvalidTokenError(msg) from None

    return payload
