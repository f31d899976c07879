"""Unit tests for auth/sessions.py -- SessionTokenManager.

Covers:
- issued access and refresh tokens both decode to the original identity
- access and refresh tokens are not interchangeable
- refresh mints new, valid access tokens and never changes the refresh token
- expired and forged refresh tokens fail with EXPIRED / INVALID
- correctly signed tokens without identity claims are INVALID
"""

from datetime import datetime, timedelta, timezone

from auth.errors import ErrorKind
from auth.models import IdentityClaims
from auth.sessions import SessionTokenManager
from auth.tokens import sign_token
from core.config import AuthConfig

CLAIMS = IdentityClaims(user_id="u1", email="a@x.com")


class TestIssue:
    def test_both_tokens_verify_to_original_claims(self, session_manager: SessionTokenManager) -> None:
        tokens = session_manager.issue_auth_tokens(CLAIMS)

        access = session_manager.verify_access_token(tokens.access_token)
        refresh = session_manager.verify_refresh_token(tokens.refresh_token)

        assert access.ok and access.value == CLAIMS
        assert refresh.ok and refresh.value == CLAIMS

    def test_expiries_follow_config(self, session_manager: SessionTokenManager, auth_config: AuthConfig) -> None:
        from jose import jwt

        tokens = session_manager.issue_auth_tokens(CLAIMS)
        access = jwt.get_unverified_claims(tokens.access_token)
        refresh = jwt.get_unverified_claims(tokens.refresh_token)
        assert access["exp"] - access["iat"] == int(auth_config.access_token_expiry.total_seconds())
        assert refresh["exp"] - refresh["iat"] == int(auth_config.refresh_token_expiry.total_seconds())

    def test_two_issues_give_distinct_refresh_tokens(self, session_manager: SessionTokenManager) -> None:
        first = session_manager.issue_auth_tokens(CLAIMS)
        second = session_manager.issue_auth_tokens(CLAIMS)
        assert first.refresh_token != second.refresh_token

    def test_access_and_refresh_not_cross_verifiable(self, session_manager: SessionTokenManager) -> None:
        tokens = session_manager.issue_auth_tokens(CLAIMS)
        assert session_manager.verify_access_token(tokens.refresh_token).error is ErrorKind.INVALID
        assert session_manager.verify_refresh_token(tokens.access_token).error is ErrorKind.INVALID

    def test_session_expires_at(self, session_manager: SessionTokenManager) -> None:
        now = datetime(2026, 1, 1, tzinfo=timezone.utc)
        assert session_manager.session_expires_at(now) == now + timedelta(days=30)


class TestRefresh:
    def test_refresh_twice_yields_valid_access_tokens(self, session_manager: SessionTokenManager) -> None:
        tokens = session_manager.issue_auth_tokens(CLAIMS)

        first = session_manager.refresh_access_token(tokens.refresh_token)
        second = session_manager.refresh_access_token(tokens.refresh_token)

        assert first.ok and second.ok
        assert session_manager.verify_access_token(first.value).value == CLAIMS
        assert session_manager.verify_access_token(second.value).value == CLAIMS
        # The refresh token itself is untouched and still valid.
        assert session_manager.verify_refresh_token(tokens.refresh_token).value == CLAIMS

    def test_wrongly_signed_refresh_token_is_invalid(
        self, session_manager: SessionTokenManager, auth_config: AuthConfig
    ) -> None:
        forged = sign_token(CLAIMS.to_payload(), "z" * 48, auth_config.refresh_token_expiry)
        result = session_manager.refresh_access_token(forged)
        assert not result.ok
        assert result.error is ErrorKind.INVALID
        assert result.value is None

    def test_access_token_cannot_refresh(self, session_manager: SessionTokenManager) -> None:
        tokens = session_manager.issue_auth_tokens(CLAIMS)
        assert session_manager.refresh_access_token(tokens.access_token).error is ErrorKind.INVALID

    def test_expired_refresh_token(self, session_manager: SessionTokenManager, auth_config: AuthConfig) -> None:
        issued = datetime.now(timezone.utc) - timedelta(days=31)
        expired = sign_token(
            CLAIMS.to_payload(), auth_config.refresh_secret, auth_config.refresh_token_expiry, now=issued
        )
        result = session_manager.refresh_access_token(expired)
        assert result.error is ErrorKind.EXPIRED

    def test_expired_access_token(self, session_manager: SessionTokenManager, auth_config: AuthConfig) -> None:
        issued = datetime.now(timezone.utc) - timedelta(days=3, seconds=5)
        expired = sign_token(CLAIMS.to_payload(), auth_config.access_secret, auth_config.access_token_expiry, now=issued)
        assert session_manager.verify_access_token(expired).error is ErrorKind.EXPIRED

    def test_signed_token_without_identity_is_invalid(
        self, session_manager: SessionTokenManager, auth_config: AuthConfig
    ) -> None:
        token = sign_token({"token": "abc"}, auth_config.refresh_secret, timedelta(minutes=5))
        assert session_manager.verify_refresh_token(token).error is ErrorKind.INVALID
