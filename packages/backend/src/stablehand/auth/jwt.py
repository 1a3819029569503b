"""JWT token creation and verification.

Learn: The dashboard issues short-lived access tokens whose `sub` claim is
the numeric user id. The broker keys per-user channels on that id
(`user:<id>`), so verification must yield an int, not a string.

create_access_token() exists for local development and tests; production
tokens come from the dashboard's auth flow.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from stablehand.config import settings


class TokenError(Exception):
    """Raised when token creation/verification fails."""


def create_access_token(
    user_id: int,
    role: str = "user",
    expires_minutes: Optional[int] = None,
) -> str:
    """Create a JWT access token."""
    expires = datetime.now(timezone.utc) + timedelta(
        minutes=expires_minutes or settings.access_token_expire_minutes
    )
    payload = {
        "sub": str(user_id),
        "role": role,
        "type": "access",
        "exp": expires,
        "iat": datetime.now(timezone.utc),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_token(token: str) -> dict:
    """Verify and decode a JWT access token.

    Returns the payload dict on success, with `sub` converted to int.
    Raises TokenError on failure.
    """
    try:
        payload = jwt.decode(
            token, settings.jwt_secret, algorithms=[settings.jwt_algorithm]
        )
    except jwt.ExpiredSignatureError:
        raise TokenError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise TokenError(f"Invalid token: {e}")

    if payload.get("type") != "access":
        raise TokenError("Not an access token")
    try:
        payload["sub"] = int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise TokenError("Token subject is not a user id")
    return payload
