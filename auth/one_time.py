"""
auth/one_time.py -- Email-verification tokens and one-time login codes.

OneTimeCredentialManager owns the issue/consume rules for both credential
kinds. The store copy is authoritative: a verification link whose signature
is still good but whose row has been replaced, consumed or has expired does
not verify. The signature only proves the link was not tampered with.

Replace semantics: issuing a new token or code for an email goes through
CredentialStore.replace_*(), a delete-then-insert in one transaction. Any
token or code in flight for that email stops working.

Store failures are fatal to the operation and come back as STORE_ERROR. If
the replace transaction fails, the email is left with no live credential at
all (fail closed). Mail delivery is not done here -- routes hand the returned
token or code to auth.mail.Mailer.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError

from auth.errors import ErrorKind, Result
from auth.models import OTPCredential, VerificationToken
from auth.store import CredentialStore
from auth.tokens import sign_token, verify_token
from core.config import AuthConfig

logger = logging.getLogger("authserver.auth.one_time")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_otp_code(length: int) -> str:
    """Return a zero-padded numeric code of exactly length digits from the OS CSPRNG."""
    return str(secrets.randbelow(10**length)).zfill(length)


class OneTimeCredentialManager:
    def __init__(
        self,
        config: AuthConfig,
        store: CredentialStore,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._config = config
        self._store = store
        self._clock = clock

    # ------------------------------------------------------------------
    # Verification tokens
    # ------------------------------------------------------------------

    def issue_verification_token(self, email: str) -> Result[str]:
        """Replace the email's verification row and return the signed link token.

        The returned JWT wraps {token, email} under the verification secret
        with the same lifetime as the row.
        """
        now = self._clock()
        row = VerificationToken(
            email=email,
            token=secrets.token_urlsafe(32),
            expires=now + self._config.verification_token_expiry,
        )
        try:
            self._store.replace_verification_token(row)
        except SQLAlchemyError as exc:
            logger.exception("Could not persist verification token")
            return Result.failure(ErrorKind.STORE_ERROR, str(exc))

        signed = sign_token(
            {"token": row.token, "email": email},
            self._config.verification_secret,
            self._config.verification_token_expiry,
            now=now,
        )
        return Result.success(signed)

    def consume_verification_token(self, signed_token: str) -> Result[str]:
        """Redeem an emailed verification token. Returns the verified email on success.

        EXPIRED / INVALID come from the signed wrapper or the row's own expiry;
        NOT_FOUND means the row was replaced, already used, or never existed.
        """
        decoded = verify_token(signed_token, self._config.verification_secret)
        if not decoded.ok:
            kind = ErrorKind.EXPIRED if decoded.error is ErrorKind.EXPIRED else ErrorKind.INVALID
            return Result.failure(kind, decoded.detail)

        token = decoded.value.get("token")
        email = decoded.value.get("email")
        if not isinstance(token, str) or not isinstance(email, str) or not token or not email:
            return Result.failure(ErrorKind.INVALID, "verification payload missing token or email")

        now = self._clock()
        try:
            row = self._store.find_verification_token_by_token(token)
            if row is None or row.email != email:
                return Result.failure(ErrorKind.NOT_FOUND, "no live verification token")
            if row.expires <= now:
                return Result.failure(ErrorKind.EXPIRED, "verification token row expired")
            if not self._store.consume_verification_token(token, email, now):
                # Lost a race with a concurrent redemption or re-issue.
                return Result.failure(ErrorKind.NOT_FOUND, "verification token already consumed")
        except SQLAlchemyError as exc:
            logger.exception("Could not consume verification token")
            return Result.failure(ErrorKind.STORE_ERROR, str(exc))
        return Result.success(email)

    # ------------------------------------------------------------------
    # OTP
    # ------------------------------------------------------------------

    def issue_otp(self, email: str) -> Result[str]:
        """Replace the email's OTP with a fresh code and return the raw code for mailing."""
        code = generate_otp_code(self._config.otp_length)
        row = OTPCredential(email=email, code=code, expires=self._clock() + self._config.otp_expiry)
        try:
            self._store.replace_otp(row)
        except SQLAlchemyError as exc:
            logger.exception("Could not persist OTP")
            return Result.failure(ErrorKind.STORE_ERROR, str(exc))
        return Result.success(code)

    def verify_otp(self, email: str, submitted_code: str) -> Result[bool]:
        """Check and burn the email's OTP in one step.

        value is False for a wrong, expired or never-issued code -- callers
        must report all three the same way. Only a store failure is an error.
        """
        if len(submitted_code) != self._config.otp_length or not (submitted_code.isascii() and submitted_code.isdigit()):
            return Result.success(False)
        try:
            matched = self._store.consume_otp(email, submitted_code, self._clock())
        except SQLAlchemyError as exc:
            logger.exception("Could not verify OTP")
            return Result.failure(ErrorKind.STORE_ERROR, str(exc))
        return Result.success(matched)
