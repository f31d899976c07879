"""
api/routes/v2/auth.py -- Password registration, login, refresh and email verification.

Routes:
  POST /api/v2/auth/register      -- create account; emails a verification link
  POST /api/v2/auth/login         -- password login; returns access + refresh tokens
  POST /api/v2/auth/refresh       -- exchange refresh token for a new access token
  POST /api/v2/auth/verify-email  -- redeem the emailed verification token

Security:
  [H2] POST /login is rate-limited per IP (LOGIN_RATE_LIMIT).
  [C1] verify_password_timed() always runs bcrypt, even for unknown accounts.
  [M5] Cache-Control: no-store on every response that carries tokens.
  Refresh and verify-email failures are reported uniformly -- the client never
  learns whether the token was expired, forged, or already used.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from api.limiter import LOGIN_RATE_LIMIT, limiter
from api.models import (
    LoginRequest,
    LoginResponse,
    MessageResponse,
    RefreshRequest,
    RefreshResponse,
    RegisterRequest,
    RegisterResponse,
    TokenPair,
    UserResponse,
    VerifyEmailRequest,
)
from auth.errors import ErrorKind
from auth.mail import Mailer
from auth.models import AuthTokens, IdentityClaims, User
from auth.one_time import OneTimeCredentialManager
from auth.sessions import SessionTokenManager
from auth.store import CredentialStore
from auth.tokens import hash_password, verify_password_timed

logger = logging.getLogger("authserver.api.auth")

# Auth policy: every route in this module is public -- these are the routes
# that produce credentials in the first place.
router = APIRouter()


# ---------------------------------------------------------------------------
# Shared helpers (also used by passwordless and Google routes)
# ---------------------------------------------------------------------------


def fail(status_code: int, code: str, message: str) -> HTTPException:
    """Build an HTTPException whose detail is the standard error payload."""
    return HTTPException(
        status_code=status_code,
        detail={"code": code, "message": message},
        headers={"Cache-Control": "no-store"},
    )


def start_session(request: Request, user: User) -> AuthTokens:
    """Issue access + refresh tokens for user and persist the Session row.

    Signing cannot fail; a store failure after signing raises SQLAlchemyError
    and surfaces as a 500 through the generic handler, so no tokens leave the
    server without their Session row.
    """
    session_manager: SessionTokenManager = request.app.state.session_manager
    store: CredentialStore = request.app.state.store
    tokens = session_manager.issue_auth_tokens(IdentityClaims(user_id=user.id, email=user.email))
    store.create_session(user.id, tokens.refresh_token, session_manager.session_expires_at())
    return tokens


def login_response(tokens: AuthTokens, user: User) -> JSONResponse:
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            tokens=TokenPair(access_token=tokens.access_token, refresh_token=tokens.refresh_token),
            user=UserResponse.from_user(user),
        ).model_dump(by_alias=True),
    )
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


def send_verification(request: Request, user: User) -> None:
    """Issue a fresh verification token for user and mail it. Raises HTTPException on failure."""
    one_time: OneTimeCredentialManager = request.app.state.one_time
    mailer: Mailer = request.app.state.mailer

    issued = one_time.issue_verification_token(user.email)
    if not issued.ok:
        raise fail(500, "internal_error", "Failed to generate verification token.")

    sent = mailer.send_verification_email(user.email, user.name or "User", issued.value)
    if not sent.ok:
        raise fail(502, "delivery_failed", "Verification email could not be sent. Try again later.")


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=RegisterResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> RegisterResponse:
    """Create a password account and email a verification link.

    The account exists (unverified) even if mail delivery fails; logging in
    later re-sends the link.
    """
    store: CredentialStore = request.app.state.store

    if store.find_user_by_email(body.email) is not None:
        raise fail(409, "conflict", "Account already exists.")

    try:
        user_id = store.create_user(
            User(email=body.email, name=body.name, hashed_password=hash_password(body.password))
        )
    except IntegrityError as exc:
        # Concurrent registration for the same email won the race.
        raise fail(409, "conflict", "Account already exists.") from exc

    user = store.get_user_by_id(user_id)
    send_verification(request, user)
    logger.info("Registered user %s", user_id)
    return RegisterResponse(
        message="User registered successfully. Please check your email to verify your account.",
        user=UserResponse.from_user(user),
    )


@limiter.limit(LOGIN_RATE_LIMIT)  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password.

    Unknown account -> 404, wrong password -> 401. bcrypt runs in both cases
    so the two are indistinguishable by timing [C1]. Unverified accounts get
    a new verification email and a 403 instead of tokens.
    """
    store: CredentialStore = request.app.state.store

    user = store.find_user_by_email(body.email)
    if user is None or user.hashed_password is None:
        verify_password_timed(body.password, None)
        raise fail(404, "account_not_found", "Account does not exist.")

    if not verify_password_timed(body.password, user.hashed_password):
        raise fail(401, "bad_credentials", "Invalid credentials.")

    if not user.is_verified:
        send_verification(request, user)
        raise fail(403, "email_not_verified", "Verification email has been sent.")

    tokens = start_session(request, user)
    logger.info("Password login for user %s", user.id)
    return login_response(tokens, user)


@router.post("/auth/refresh", response_model=RefreshResponse)
def refresh(request: Request, body: RefreshRequest) -> JSONResponse:
    """Mint a new access token. The refresh token itself is not rotated."""
    session_manager: SessionTokenManager = request.app.state.session_manager

    result = session_manager.refresh_access_token(body.refresh_token)
    if not result.ok:
        logger.info("Refresh rejected (%s)", result.error.value)
        raise fail(401, "invalid_refresh_token", "Invalid or expired refresh token.")

    resp = JSONResponse(content=RefreshResponse(access_token=result.value).model_dump(by_alias=True))
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.post("/auth/verify-email", response_model=MessageResponse)
def verify_email(request: Request, body: VerifyEmailRequest) -> MessageResponse:
    """Redeem a verification link token and mark the address verified."""
    one_time: OneTimeCredentialManager = request.app.state.one_time
    store: CredentialStore = request.app.state.store

    result = one_time.consume_verification_token(body.token)
    if result.error is ErrorKind.STORE_ERROR:
        raise fail(500, "internal_error", "Could not verify email. Try again later.")
    if not result.ok:
        logger.info("Verification token rejected (%s)", result.error.value)
        raise fail(400, "invalid_verification_token", "Invalid or expired verification link.")

    if not store.mark_email_verified(result.value):
        raise fail(400, "invalid_verification_token", "Invalid or expired verification link.")
    return MessageResponse(message="Email verified successfully.")
