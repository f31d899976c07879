"""Unit tests for auth/mail.py -- Mailer.

All HTTP is mocked; the relay is never contacted.
"""

from unittest.mock import MagicMock

import requests

from auth.errors import ErrorKind
from auth.mail import Mailer


def _mailer(session: MagicMock, base_url: str = "https://relay.test/api/v1/mail/") -> Mailer:
    return Mailer(base_url, key="relay-key", session=session)


def test_send_otp_posts_to_relay() -> None:
    session = MagicMock()
    result = _mailer(session).send_otp_email("a@x.com", "482913")

    assert result.ok
    session.post.assert_called_once()
    url = session.post.call_args.args[0]
    assert url == "https://relay.test/api/v1/mail/otp"
    assert session.post.call_args.kwargs["json"] == {"email": "a@x.com", "token": "482913", "key": "relay-key"}
    assert session.post.call_args.kwargs["timeout"] == 10


def test_send_verification_posts_to_relay() -> None:
    session = MagicMock()
    result = _mailer(session).send_verification_email("a@x.com", "Ada", "signed.jwt.value")

    assert result.ok
    assert session.post.call_args.args[0].endswith("/verification")
    body = session.post.call_args.kwargs["json"]
    assert body["token"] == "signed.jwt.value"
    assert body["name"] == "Ada"


def test_http_error_is_delivery_error() -> None:
    session = MagicMock()
    session.post.return_value.raise_for_status.side_effect = requests.HTTPError("500 Server Error")
    result = _mailer(session).send_otp_email("a@x.com", "482913")
    assert result.error is ErrorKind.DELIVERY_ERROR


def test_connection_error_is_delivery_error() -> None:
    session = MagicMock()
    session.post.side_effect = requests.ConnectionError("refused")
    result = _mailer(session).send_verification_email("a@x.com", "Ada", "t")
    assert result.error is ErrorKind.DELIVERY_ERROR


def test_unconfigured_relay_is_delivery_error() -> None:
    session = MagicMock()
    result = _mailer(session, base_url="").send_otp_email("a@x.com", "482913")
    assert result.error is ErrorKind.DELIVERY_ERROR
    session.post.assert_not_called()
