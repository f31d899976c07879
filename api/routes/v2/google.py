"""
api/routes/v2/google.py -- Google sign-in for the mobile app.

Routes (mounted without the /api/v2 prefix, matching the OAuth client config):
  GET /api/auth/google           -- redirect to Google's consent page
  GET /api/auth/google/callback  -- finish the exchange, redirect into the app

The callback always ends in a redirect to a mobile deep link:
  success -> {mobile_success_url}?accessToken=...&refreshToken=...
  failure -> {mobile_error_url}?message=Authentication%20failed

Flow:
  1. Exchange the authorization code (authlib checks state via the session).
  2. Extract (sub, verified email) -- raises ValueError if unverified [H1].
  3. Returning user: look up by (google, sub).
  4. First Google login: match by email and link, or create a new user.
     Linking an unverified row drops its password [H3].
  5. Issue tokens and persist the Session row exactly like password login.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from urllib.parse import urlencode

from authlib.integrations.starlette_client import OAuthError
from fastapi import APIRouter, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.exc import IntegrityError

from api.routes.v2.auth import start_session
from auth.models import Account, User
from auth.oauth import get_google_user_info, is_google_enabled
from auth.store import CredentialStore
from core.config import Settings

logger = logging.getLogger("authserver.api.google")

router = APIRouter()

_PROVIDER = "google"


def _error_redirect(settings: Settings) -> RedirectResponse:
    query = urlencode({"message": "Authentication failed"})
    return RedirectResponse(f"{settings.mobile_error_url}?{query}", status_code=302)


@router.get("/api/auth/google")
async def google_login(request: Request) -> RedirectResponse:
    settings: Settings = request.app.state.settings
    if not is_google_enabled(settings):
        return _error_redirect(settings)
    client = request.app.state.oauth.create_client(_PROVIDER)
    redirect_uri = str(request.url_for("google_callback"))
    return await client.authorize_redirect(request, redirect_uri)


@router.get("/api/auth/google/callback", name="google_callback")
async def google_callback(request: Request) -> RedirectResponse:
    settings: Settings = request.app.state.settings
    if not is_google_enabled(settings):
        return _error_redirect(settings)

    store: CredentialStore = request.app.state.store
    client = request.app.state.oauth.create_client(_PROVIDER)

    # Step 1: exchange code for token
    try:
        token = await client.authorize_access_token(request)
    except OAuthError:
        logger.exception("Google token exchange failed")
        return _error_redirect(settings)

    # Step 2: verified email and stable subject [H1]
    try:
        profile = get_google_user_info(token)
    except ValueError:
        logger.warning("Google login rejected: unverified or missing email")
        return _error_redirect(settings)

    # Steps 3-4: find, link or create
    user = store.find_user_by_account(_PROVIDER, profile.subject)
    if user is None:
        user = store.find_user_by_email(profile.email)
        if user is None:
            user_id = store.create_user(
                User(
                    email=profile.email,
                    name=profile.name,
                    image=profile.picture,
                    email_verified=datetime.now(timezone.utc).isoformat(),
                )
            )
        else:
            user_id = user.id
            # Google vouched for the address. A password set on a still
            # unverified row came from whoever registered first; drop it.
            store.mark_email_verified(profile.email, drop_password=True)
        try:
            store.link_account(Account(user_id=user_id, provider=_PROVIDER, provider_account_id=profile.subject))
        except IntegrityError:
            # Concurrent first login linked it already.
            logger.info("Google account already linked for user %s", user_id)
    else:
        user_id = user.id
    store.update_profile(user_id, profile.name, profile.picture)
    user = store.get_user_by_id(user_id)

    # Step 5: issue tokens
    tokens = start_session(request, user)
    logger.info("Google login for user %s", user.id)
    query = urlencode({"accessToken": tokens.access_token, "refreshToken": tokens.refresh_token})
    resp = RedirectResponse(f"{settings.mobile_success_url}?{query}", status_code=302)
    resp.headers["Cache-Control"] = "no-store"
    return resp
