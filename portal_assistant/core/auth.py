"""Authentication dependency for FastAPI."""

import logging
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from portal_assistant.core.errors import AuthenticationError
from portal_assistant.db.supabase_client import get_supabase

logger = logging.getLogger(__name__)

# HTTP Bearer scheme for Authorization header
security = HTTPBearer(auto_error=False)


class AuthContext:
    """Context object containing authenticated user info."""

    def __init__(self, user_id: str, email: str | None, token: str):
        self.user_id = user_id
        self.email = email
        self.token = token


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[AuthContext]:
    """
    Validate the Supabase JWT from the Authorization header.

    Returns None if no valid auth is present; the caller decides how to reject.
    """
    if not credentials:
        return None

    token = credentials.credentials
    try:
        # Validates signature and expiration
        auth_response = get_supabase().auth.get_user(token)
    except Exception as e:
        logger.warning(f"Token validation failed: {e}")
        return None

    if not auth_response or not auth_response.user:
        return None

    return AuthContext(
        user_id=str(auth_response.user.id),
        email=auth_response.user.email,
        token=token,
    )


async def require_user(auth: Optional[AuthContext] = Depends(get_current_user)) -> AuthContext:
    """Dependency that rejects requests without a valid session."""
    if auth is None:
        raise AuthenticationError("User not authenticated.")
    return auth
