"""FastAPI auth dependencies.

Learn: These are used as Depends() in route handlers to extract
the current user from the request.

Two places a token can arrive:
1. Authorization: Bearer <jwt> header (fetch/XHR calls)
2. ?token=<jwt> query param (EventSource cannot set headers)
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException, Query

from stablehand.auth.jwt import TokenError, verify_token


class CurrentIdentity:
    """The authenticated user making the request."""

    def __init__(self, user_id: int, role: str = "user"):
        self.user_id = user_id
        self.role = role

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def identity_from_token(token: str) -> CurrentIdentity:
    """Decode a token into an identity. Raises TokenError."""
    payload = verify_token(token)
    return CurrentIdentity(
        user_id=payload["sub"],
        role=payload.get("role", "user"),
    )


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Pull the token out of an Authorization header value."""
    if authorization and authorization.startswith("Bearer "):
        return authorization[7:]
    return None


async def get_current_user_optional(
    authorization: Optional[str] = Header(None),
    token: Optional[str] = Query(None, include_in_schema=False),
) -> Optional[CurrentIdentity]:
    """Extract current identity (optional — returns None if no auth)."""
    raw = bearer_token(authorization) or token
    if not raw:
        return None
    try:
        return identity_from_token(raw)
    except TokenError as e:
        raise HTTPException(
            status_code=401,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )


async def get_current_user(
    identity: Optional[CurrentIdentity] = Depends(get_current_user_optional),
) -> CurrentIdentity:
    """Extract current identity (required — 401 if no auth)."""
    if not identity:
        raise HTTPException(
            status_code=401,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return identity


async def require_admin(
    identity: CurrentIdentity = Depends(get_current_user),
) -> CurrentIdentity:
    """Admin-only routes — 403 for everyone else."""
    if not identity.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return identity
