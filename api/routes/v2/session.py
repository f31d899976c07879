"""
api/routes/v2/session.py -- Bearer-authenticated session endpoints for mobile clients.

Routes:
  GET  /api/v2/session  -- confirm the access token and return the user
  GET  /api/v2/profile  -- same payload, kept for older app builds
  POST /api/v2/logout   -- acknowledge logout; the client discards its tokens

Logout does not revoke anything server-side: access tokens are stateless and
refresh is gated on signature + expiry only (see DESIGN.md).
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from api.models import MessageResponse, SessionResponse, UserResponse
from auth.dependencies import get_current_user
from auth.models import User

router = APIRouter()


@router.get("/session", response_model=SessionResponse)
async def session(current_user: User = Depends(get_current_user)) -> SessionResponse:
    return SessionResponse(user=UserResponse.from_user(current_user))


@router.get("/profile", response_model=SessionResponse)
async def profile(current_user: User = Depends(get_current_user)) -> SessionResponse:
    return SessionResponse(user=UserResponse.from_user(current_user))


@router.post("/logout", response_model=MessageResponse)
async def logout(current_user: User = Depends(get_current_user)) -> MessageResponse:
    return MessageResponse(message="Logged out successfully")
