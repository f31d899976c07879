"""
auth/oauth.py -- Authlib Google sign-in configuration.

create_oauth_registry() builds the authlib OAuth registry from Settings at
application startup. Google is registered only when both client ID and
secret are configured; routes check is_google_enabled() before redirecting.

Security notes:
  [H1] Email verification is mandatory. get_google_user_info() raises
       ValueError unless the id_token says email_verified. An unverified email
       could belong to somebody else and would let them take over the account
       with that address.

  OAuth state parameter (CSRF protection) is handled by authlib automatically
  via Starlette SessionMiddleware.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from authlib.integrations.starlette_client import OAuth

from core.config import Settings

logger = logging.getLogger("authserver.auth.oauth")

GOOGLE_METADATA_URL = "https://accounts.google.com/.well-known/openid-configuration"


@dataclass(frozen=True)
class GoogleProfile:
    """Normalized subset of the Google id_token claims."""

    subject: str
    email: str
    name: str | None = None
    picture: str | None = None


def create_oauth_registry(settings: Settings) -> OAuth:
    """Return an OAuth registry with Google registered if credentials are configured."""
    oauth = OAuth()
    if settings.google_client_id and settings.google_client_secret:
        oauth.register(
            name="google",
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
            server_metadata_url=GOOGLE_METADATA_URL,
            client_kwargs={"scope": "openid email profile"},
        )
        logger.info("Google OAuth provider registered")
    else:
        logger.info("Google OAuth not configured -- /api/auth/google disabled")
    return oauth


def is_google_enabled(settings: Settings) -> bool:
    return bool(settings.google_client_id and settings.google_client_secret)


def get_google_user_info(token: dict) -> GoogleProfile:
    """Extract a GoogleProfile from the token returned by authorize_access_token().

    [H1] The email claim is only accepted when email_verified is True.
    Raises ValueError on missing userinfo, unverified email, or missing sub.
    """
    userinfo = token.get("userinfo")
    if not userinfo:
        raise ValueError("google OAuth: no userinfo in token response")

    if not userinfo.get("email_verified", False):
        raise ValueError("google OAuth: email is not verified")

    email = userinfo.get("email")
    subject = userinfo.get("sub")
    if not email or not subject:
        raise ValueError("google OAuth: missing email or sub claim in userinfo")

    return GoogleProfile(
        subject=str(subject),
        email=email,
        name=userinfo.get("name"),
        picture=userinfo.get("picture"),
    )
