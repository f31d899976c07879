"""
api/routes/v2/passwordless.py -- One-time code login.

Routes:
  POST /api/v2/auth/passwordless/send-otp    -- email a fresh code
  POST /api/v2/auth/passwordless/verify-otp  -- exchange the code for tokens

A wrong, expired, already-used or never-issued code all produce the same 400.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from api.limiter import OTP_RATE_LIMIT, limiter
from api.models import LoginResponse, MessageResponse, SendOTPRequest, VerifyOTPRequest
from api.routes.v2.auth import fail, login_response, start_session
from auth.mail import Mailer
from auth.one_time import OneTimeCredentialManager
from auth.store import CredentialStore

logger = logging.getLogger("authserver.api.passwordless")

router = APIRouter()


@limiter.limit(OTP_RATE_LIMIT)
@router.post("/auth/passwordless/send-otp", response_model=MessageResponse)
def send_otp(request: Request, body: SendOTPRequest) -> MessageResponse:
    """Issue a new OTP for an existing account and email it.

    Any code previously sent to this address stops working.
    """
    store: CredentialStore = request.app.state.store
    one_time: OneTimeCredentialManager = request.app.state.one_time
    mailer: Mailer = request.app.state.mailer

    if store.find_user_by_email(body.email) is None:
        raise fail(404, "account_not_found", "Account does not exist.")

    issued = one_time.issue_otp(body.email)
    if not issued.ok:
        raise fail(500, "internal_error", "Failed to generate OTP.")

    sent = mailer.send_otp_email(body.email, issued.value)
    if not sent.ok:
        raise fail(502, "delivery_failed", "OTP email could not be sent. Try again later.")
    return MessageResponse(message="OTP has been sent to your email!")


@limiter.limit(OTP_RATE_LIMIT)
@router.post("/auth/passwordless/verify-otp", response_model=LoginResponse)
def verify_otp(request: Request, body: VerifyOTPRequest) -> JSONResponse:
    store: CredentialStore = request.app.state.store
    one_time: OneTimeCredentialManager = request.app.state.one_time

    result = one_time.verify_otp(body.email, body.otp)
    if not result.ok:
        raise fail(500, "internal_error", "Could not verify OTP. Try again later.")
    if not result.value:
        raise fail(400, "invalid_otp", "Invalid or expired OTP.")

    user = store.find_user_by_email(body.email)
    if user is None:
        raise fail(404, "account_not_found", "Account does not exist.")

    tokens = start_session(request, user)
    logger.info("OTP login for user %s", user.id)
    return login_response(tokens, user)
