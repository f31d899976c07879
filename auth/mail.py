"""
auth/mail.py -- Outbound delivery of verification links and OTP codes.

Mail is rendered and sent by an external relay. This module only POSTs
{"email", "token", "key"} to it; the relay owns templates and SMTP.

Delivery is reported through Result like every other credential operation.
A DELIVERY_ERROR never undoes the token/OTP row that was committed before the
send -- the user can simply ask for a new one.

Codes and tokens are never written to the log.
"""

from __future__ import annotations

import logging

import requests

from auth.errors import ErrorKind, Result

logger = logging.getLogger("authserver.auth.mail")

_TIMEOUT_SECONDS = 10


class Mailer:
    """Thin client for the mail relay.

    Usage:
        mailer = Mailer("https://mail.example.com/api/v1/mail", key="...")
        result = mailer.send_otp_email("a@x.com", "482913")
        if not result.ok: ...
    """

    def __init__(self, base_url: str, key: str, session: requests.Session | None = None) -> None:
        self._base_url = base_url.rstrip("/")
        self._key = key
        # Shared session for connection pooling; max_redirects kept low because
        # the relay is a single known host.
        self._session = session or requests.Session()
        self._session.max_redirects = 3

    def send_verification_email(self, email: str, name: str, token: str) -> Result[None]:
        """Send the signed verification token. name is passed for the greeting line."""
        return self._post("verification", {"email": email, "name": name, "token": token})

    def send_otp_email(self, email: str, code: str) -> Result[None]:
        return self._post("otp", {"email": email, "token": code})

    def _post(self, kind: str, body: dict) -> Result[None]:
        if not self._base_url:
            logger.warning("Mail relay not configured -- %s email to %s not sent", kind, body["email"])
            return Result.failure(ErrorKind.DELIVERY_ERROR, "mail relay not configured")
        try:
            resp = self._session.post(
                f"{self._base_url}/{kind}",
                json={**body, "key": self._key},
                timeout=_TIMEOUT_SECONDS,
            )
            resp.raise_for_status()
        except requests.RequestException as e:
            logger.warning("%s email delivery failed for %s: %s", kind, body["email"], e)
            return Result.failure(ErrorKind.DELIVERY_ERROR, str(e))
        logger.info("%s email dispatched to %s", kind, body["email"])
        return Result.success()

    def close(self) -> None:
        self._session.close()
