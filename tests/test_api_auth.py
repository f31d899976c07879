"""
tests/test_api_auth.py -- Integration tests for registration, login, refresh and email verification.

These tests exercise the full stack: FastAPI routing -> request validation ->
managers -> CredentialStore -> response serialization. The mailer is a
MagicMock so tests can read back the link or code that "was emailed".

Coverage:
  - register: 201 + verification mail, 409 duplicate, 502 delivery failure
  - login: 404 unknown, 401 wrong password, 403 unverified (re-sends mail), 200 + Session row
  - verify-email: happy path, replaced link rejected, reuse rejected
  - refresh: 200 with valid refresh token (repeatable), 401 for forged/access tokens
  - session endpoints: bearer required, refresh token rejected as bearer
"""

from __future__ import annotations

from auth.errors import ErrorKind, Result


def _login(api, email: str = "a@x.com", password: str = "correct-horse"):
    return api.client.post("/api/v2/auth/login", json={"email": email, "password": password})


class TestRegister:
    def test_register_sends_verification(self, api) -> None:
        resp = api.client.post(
            "/api/v2/auth/register",
            json={"email": "new@x.com", "password": "longenough", "name": "New"},
        )
        assert resp.status_code == 201
        body = resp.json()
        assert body["user"]["email"] == "new@x.com"
        assert body["user"]["emailVerified"] is None
        assert "password" not in str(body)

        email, name, token = api.mailer.send_verification_email.call_args.args
        assert (email, name) == ("new@x.com", "New")
        assert api.store.find_verification_token("new@x.com") is not None

    def test_register_duplicate(self, api) -> None:
        api.create_user("a@x.com")
        resp = api.client.post(
            "/api/v2/auth/register",
            json={"email": "a@x.com", "password": "longenough", "name": "Dup"},
        )
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "conflict"

    def test_register_validation(self, api) -> None:
        resp = api.client.post(
            "/api/v2/auth/register",
            json={"email": "not-an-email", "password": "short", "name": ""},
        )
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"

    def test_register_delivery_failure_keeps_account(self, api) -> None:
        api.mailer.send_verification_email.return_value = Result.failure(ErrorKind.DELIVERY_ERROR, "down")
        resp = api.client.post(
            "/api/v2/auth/register",
            json={"email": "new@x.com", "password": "longenough", "name": "New"},
        )
        assert resp.status_code == 502
        assert resp.json()["error"]["code"] == "delivery_failed"
        assert api.store.find_user_by_email("new@x.com") is not None
        assert api.store.find_verification_token("new@x.com") is not None


class TestLogin:
    def test_unknown_account(self, api) -> None:
        resp = _login(api, "nobody@x.com")
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "account_not_found"

    def test_wrong_password(self, api) -> None:
        api.create_user("a@x.com")
        resp = _login(api, password="wrong-password")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "bad_credentials"
        assert resp.headers["cache-control"] == "no-store"

    def test_unverified_account_gets_new_link(self, api) -> None:
        api.create_user("a@x.com", verified=False)
        resp = _login(api)
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "email_not_verified"
        api.mailer.send_verification_email.assert_called_once()
        assert "tokens" not in resp.json()

    def test_success_returns_tokens_and_persists_session(self, api) -> None:
        user_id = api.create_user("a@x.com")
        resp = _login(api)
        assert resp.status_code == 200
        assert resp.headers["cache-control"] == "no-store"
        body = resp.json()
        assert body["user"]["id"] == user_id
        tokens = body["tokens"]
        session = api.store.get_session(tokens["refreshToken"])
        assert session is not None
        assert session.user_id == user_id

    def test_access_token_works_as_bearer(self, api) -> None:
        api.create_user("a@x.com")
        tokens = _login(api).json()["tokens"]
        resp = api.client.get("/api/v2/session", headers={"Authorization": f"Bearer {tokens['accessToken']}"})
        assert resp.status_code == 200
        assert resp.json()["user"]["email"] == "a@x.com"

    def test_refresh_token_rejected_as_bearer(self, api) -> None:
        api.create_user("a@x.com")
        tokens = _login(api).json()["tokens"]
        resp = api.client.get("/api/v2/profile", headers={"Authorization": f"Bearer {tokens['refreshToken']}"})
        assert resp.status_code == 401

    def test_session_requires_bearer(self, api) -> None:
        assert api.client.get("/api/v2/session").status_code == 401
        assert api.client.post("/api/v2/logout").status_code == 401


class TestVerifyEmail:
    def test_verify_then_login(self, api) -> None:
        api.create_user("a@x.com", verified=False)
        _login(api)
        link_token = api.last_verification_token()

        resp = api.client.post("/api/v2/auth/verify-email", json={"token": link_token})
        assert resp.status_code == 200
        assert api.store.find_user_by_email("a@x.com").is_verified
        assert _login(api).status_code == 200

    def test_link_is_single_use(self, api) -> None:
        api.create_user("a@x.com", verified=False)
        _login(api)
        link_token = api.last_verification_token()
        assert api.client.post("/api/v2/auth/verify-email", json={"token": link_token}).status_code == 200
        resp = api.client.post("/api/v2/auth/verify-email", json={"token": link_token})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_verification_token"

    def test_replaced_link_rejected(self, api) -> None:
        api.create_user("a@x.com", verified=False)
        _login(api)
        first = api.last_verification_token()
        _login(api)
        second = api.last_verification_token()

        assert api.client.post("/api/v2/auth/verify-email", json={"token": first}).status_code == 400
        assert api.client.post("/api/v2/auth/verify-email", json={"token": second}).status_code == 200

    def test_garbage_token(self, api) -> None:
        resp = api.client.post("/api/v2/auth/verify-email", json={"token": "garbage"})
        assert resp.status_code == 400


class TestRefresh:
    def test_refresh_is_repeatable(self, api) -> None:
        api.create_user("a@x.com")
        refresh_token = _login(api).json()["tokens"]["refreshToken"]

        for _ in range(2):
            resp = api.client.post("/api/v2/auth/refresh", json={"refreshToken": refresh_token})
            assert resp.status_code == 200
            access = resp.json()["accessToken"]
            me = api.client.get("/api/v2/session", headers={"Authorization": f"Bearer {access}"})
            assert me.status_code == 200

    def test_forged_refresh_token(self, api) -> None:
        from datetime import timedelta

        from auth.tokens import sign_token

        forged = sign_token({"userId": "u1", "email": "a@x.com"}, "f" * 48, timedelta(days=30))
        resp = api.client.post("/api/v2/auth/refresh", json={"refreshToken": forged})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "invalid_refresh_token"
        assert "accessToken" not in resp.json()

    def test_access_token_cannot_refresh(self, api) -> None:
        api.create_user("a@x.com")
        access = _login(api).json()["tokens"]["accessToken"]
        resp = api.client.post("/api/v2/auth/refresh", json={"refreshToken": access})
        assert resp.status_code == 401

    def test_missing_refresh_token(self, api) -> None:
        resp = api.client.post("/api/v2/auth/refresh", json={})
        assert resp.status_code == 422
