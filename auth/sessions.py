"""
auth/sessions.py -- Access/refresh token issuance and verification.

SessionTokenManager is a plain object holding an AuthConfig. It never touches
the store: issue_auth_tokens() only signs, and the route handler persists the
Session row afterwards so a signing problem and a DB problem surface as
different failures.

Refresh semantics: refresh_access_token() mints a new access token from a
valid refresh token and leaves the refresh token untouched. The same refresh
token keeps working until its own exp. Session rows are not consulted (see
DESIGN.md, "Session rows gate refresh?").
"""

from __future__ import annotations

import secrets
from datetime import datetime, timezone

from auth.errors import ErrorKind, Result
from auth.models import AuthTokens, IdentityClaims
from auth.tokens import sign_token, verify_token
from core.config import AuthConfig


def _with_jti(claims: IdentityClaims) -> dict:
    # Two logins in the same second would otherwise sign identical tokens, and
    # sessions.session_token is unique.
    payload = claims.to_payload()
    payload["jti"] = secrets.token_hex(8)
    return payload


class SessionTokenManager:
    def __init__(self, config: AuthConfig) -> None:
        self._config = config

    def issue_auth_tokens(self, claims: IdentityClaims) -> AuthTokens:
        """Sign an access and a refresh token for the same identity."""
        return AuthTokens(
            access_token=sign_token(_with_jti(claims), self._config.access_secret, self._config.access_token_expiry),
            refresh_token=sign_token(
                _with_jti(claims), self._config.refresh_secret, self._config.refresh_token_expiry
            ),
        )

    def verify_access_token(self, token: str) -> Result[IdentityClaims]:
        return self._verify(token, self._config.access_secret)

    def verify_refresh_token(self, token: str) -> Result[IdentityClaims]:
        return self._verify(token, self._config.refresh_secret)

    def refresh_access_token(self, refresh_token: str) -> Result[str]:
        """Exchange a valid refresh token for a fresh access token.

        Failures from verify_refresh_token() are passed through unchanged.
        """
        verified = self.verify_refresh_token(refresh_token)
        if not verified.ok:
            return Result.failure(verified.error, verified.detail)
        access_token = sign_token(
            _with_jti(verified.value),
            self._config.access_secret,
            self._config.access_token_expiry,
        )
        return Result.success(access_token)

    def session_expires_at(self, now: datetime | None = None) -> datetime:
        """Expiry to store on the Session row for a refresh token issued at now."""
        return (now or datetime.now(timezone.utc)) + self._config.refresh_token_expiry

    @staticmethod
    def _verify(token: str, secret: str) -> Result[IdentityClaims]:
        decoded = verify_token(token, secret)
        if not decoded.ok:
            if decoded.error is ErrorKind.EXPIRED:
                return Result.failure(ErrorKind.EXPIRED, decoded.detail)
            return Result.failure(ErrorKind.INVALID, decoded.detail)
        try:
            claims = IdentityClaims.from_payload(decoded.value)
        except ValueError as exc:
            # Correctly signed but not an identity token, e.g. a verification wrapper.
            return Result.failure(ErrorKind.INVALID, str(exc))
        return Result.success(claims)
