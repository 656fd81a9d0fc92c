"""
Authentication dependencies for FastAPI.

Verifies bearer tokens issued by the studio's auth service.
"""

from typing import Optional
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from backend.app.core.exceptions import AuthenticationError
from backend.app.core.jwt import decode_access_token

# a missing header is reported by get_current_user
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> dict:
    """
    FastAPI dependency for JWT authentication.

    Validates the token signature and expiry and requires a user_id claim.
    User accounts live in the auth service, so there is no local user lookup.

    Returns:
        Decoded token payload (sub, user_id, role, exp)

    Raises:
        AuthenticationError: 401 if the header is missing or the token is invalid
    """
    if credentials is None:
        raise AuthenticationError("Not authenticated")

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise AuthenticationError("Could not validate credentials")

    if not payload.get("user_id"):
        raise AuthenticationError("Invalid token payload")

    return payload
