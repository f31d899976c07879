"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Bearer access tokens are the only accepted credential:
  Authorization: Bearer <access token>

The token is verified with the SessionTokenManager on app.state (access
secret only -- a refresh token presented here fails as INVALID), then the
user is re-read from the store so deleted accounts stop working immediately.

try_get_current_user() is the soft variant (returns None on failure).
get_current_user() wraps it and raises HTTP 401 if unauthenticated.

Layer rule: auth/dependencies.py may import from fastapi because this module
is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.models import User
from auth.sessions import SessionTokenManager
from auth.store import CredentialStore


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None


def try_get_current_user(request: Request) -> User | None:
    """Authenticate the request from its Bearer header. Never raises."""
    token = _bearer_token(request)
    if token is None:
        return None

    session_manager: SessionTokenManager = request.app.state.session_manager
    verified = session_manager.verify_access_token(token)
    if not verified.ok:
        return None

    store: CredentialStore = request.app.state.store
    user = store.get_user_by_id(verified.value.user_id)
    if user is None or user.email != verified.value.email:
        return None
    return user


def get_current_user(request: Request) -> User:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user: User = Depends(get_current_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return user
