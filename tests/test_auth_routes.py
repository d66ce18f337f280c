"""
tests/test_auth_routes.py -- Integration tests for the account, session and profile endpoints.

Covers:
  - register: 201, httpOnly access cookie, 409 on duplicates, 422 on bad input
  - login by username or email, generic 401 on failure, no-store
  - logout clears the credential
  - /auth/me with and without a session
  - email verification and password reset via the emailed tokens
  - own profile read/patch, public profile of another user
"""

from __future__ import annotations

import re

import pytest
from fastapi.testclient import TestClient

from auth.tokens import ACCESS_COOKIE

PASSWORD = "correct-horse-battery"


def _token_from(mail: dict) -> str:
    match = re.search(r"token=([\w-]+)", mail["text"])
    assert match, mail["text"]
    return match.group(1)


class TestRegister:
    def test_register_sets_session(self, client: TestClient) -> None:
        resp = client.post(
            "/api/v1/auth/register",
            json={"email": "Alice@Example.com", "username": "alice", "password": PASSWORD},
        )
        assert resp.status_code == 201, resp.text
        user = resp.json()["user"]
        assert user["email"] == "alice@example.com"
        assert user["username"] == "alice"
        assert user["email_verified"] is False
        assert "password" not in resp.text
        assert resp.headers["cache-control"] == "no-store"

        access = [h for h in resp.headers.get_list("set-cookie") if h.startswith(f"{ACCESS_COOKIE}=")]
        assert access and "httponly" in access[0].lower()
        assert client.get("/api/v1/auth/me").json()["user"]["id"] == user["id"]

    def test_register_sends_verification_mail(self, client: TestClient, mailer) -> None:
        client.post(
            "/api/v1/auth/register",
            json={"email": "alice@example.com", "username": "alice", "password": PASSWORD},
        )
        assert len(mailer.sent) == 1
        assert mailer.sent[0]["to"] == "alice@example.com"
        assert "/api/v1/auth/verify-email?token=" in mailer.sent[0]["text"]

    @pytest.mark.parametrize(
        "other",
        [
            {"email": "alice@example.com", "username": "alice2"},
            {"email": "alice2@example.com", "username": "alice"},
        ],
    )
    def test_duplicate_email_or_username(self, client: TestClient, signup, csrf, other: dict) -> None:
        signup("alice")
        resp = client.post("/api/v1/auth/register", json={**other, "password": PASSWORD}, headers=csrf())
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "user_already_exists"

    @pytest.mark.parametrize(
        "body",
        [
            {"email": "not-an-email", "username": "alice", "password": PASSWORD},
            {"email": "alice@example.com", "username": "al", "password": PASSWORD},
            {"email": "alice@example.com", "username": "bad name!", "password": PASSWORD},
            {"email": "alice@example.com", "username": "alice", "password": "short"},
            {"username": "alice", "password": PASSWORD},
        ],
    )
    def test_invalid_body(self, client: TestClient, body: dict) -> None:
        resp = client.post("/api/v1/auth/register", json=body)
        assert resp.status_code == 422
        error = resp.json()["error"]
        assert error["code"] == "validation_error"
        assert isinstance(error["detail"], list)


class TestLogin:
    @pytest.fixture()
    def registered(self, client: TestClient, signup, csrf) -> dict:
        user = signup("alice")
        client.post("/api/v1/auth/logout", headers=csrf())
        return user

    @pytest.mark.parametrize("login", ["alice", "alice@example.com", "Alice@Example.COM"])
    def test_login(self, client: TestClient, registered: dict, login: str) -> None:
        resp = client.post("/api/v1/auth/login", json={"email_or_username": login, "password": PASSWORD})
        assert resp.status_code == 200, resp.text
        assert resp.json()["user"]["id"] == registered["id"]
        assert resp.headers["cache-control"] == "no-store"
        assert resp.headers["x-csrf-token"]
        assert client.get("/api/v1/auth/me").status_code == 200

    @pytest.mark.parametrize(
        "body",
        [
            {"email_or_username": "alice", "password": "wrong-password"},
            {"email_or_username": "nobody", "password": PASSWORD},
        ],
    )
    def test_bad_credentials_are_indistinguishable(self, client: TestClient, registered: dict, body: dict) -> None:
        resp = client.post("/api/v1/auth/login", json=body)
        assert resp.status_code == 401
        assert resp.json()["error"] == {"code": "invalid_credentials", "message": "Invalid credentials."}
        assert resp.headers["cache-control"] == "no-store"
        assert client.cookies.get(ACCESS_COOKIE) is None


class TestSession:
    def test_me_requires_session(self, client: TestClient) -> None:
        resp = client.get("/api/v1/auth/me")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"

    def test_me_without_avatar(self, client: TestClient, signup) -> None:
        signup()
        data = client.get("/api/v1/auth/me").json()
        assert data["user"]["username"] == "alice"
        assert data["avatar"] is None

    def test_garbage_cookie_is_unauthenticated(self, client: TestClient) -> None:
        client.cookies.set(ACCESS_COOKIE, "not.a.jwt")
        assert client.get("/api/v1/auth/me").status_code == 401

    def test_logout_clears_cookie(self, client: TestClient, signup, csrf) -> None:
        signup()
        resp = client.post("/api/v1/auth/logout", headers=csrf())
        assert resp.status_code == 204
        assert client.cookies.get(ACCESS_COOKIE) is None
        assert client.get("/api/v1/auth/me").status_code == 401

    def test_logout_without_session(self, client: TestClient) -> None:
        assert client.post("/api/v1/auth/logout").status_code == 204


class TestEmailVerification:
    def test_verify_with_mailed_token(self, client: TestClient, signup, mailer) -> None:
        signup()
        token = _token_from(mailer.sent[0])
        resp = client.get("/api/v1/auth/verify-email", params={"token": token})
        assert resp.status_code == 200
        assert resp.json() == {"ok": True}
        assert client.get("/api/v1/auth/me").json()["user"]["email_verified"] is True

    def test_missing_token(self, client: TestClient) -> None:
        resp = client.get("/api/v1/auth/verify-email")
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "missing_token"

    def test_unknown_token(self, client: TestClient) -> None:
        resp = client.get("/api/v1/auth/verify-email", params={"token": "nope"})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_token"


class TestPasswordReset:
    def test_unknown_email_answers_ok(self, client: TestClient, mailer) -> None:
        resp = client.post("/api/v1/auth/forgot-password", json={"email": "ghost@example.com"})
        assert resp.status_code == 200
        assert resp.json() == {"ok": True}
        assert mailer.sent == []

    def test_reset_flow(self, client: TestClient, signup, csrf, mailer) -> None:
        signup()
        client.post("/api/v1/auth/logout", headers=csrf())
        assert client.post("/api/v1/auth/forgot-password", json={"email": "alice@example.com"}).status_code == 200
        token = _token_from(mailer.sent[-1])
        assert "/reset-password?token=" in mailer.sent[-1]["text"]

        new_password = "a-brand-new-password"
        resp = client.post("/api/v1/auth/reset-password", json={"token": token, "new_password": new_password})
        assert resp.status_code == 200

        old = client.post("/api/v1/auth/login", json={"email_or_username": "alice", "password": PASSWORD})
        assert old.status_code == 401
        new = client.post("/api/v1/auth/login", json={"email_or_username": "alice", "password": new_password})
        assert new.status_code == 200

    def test_reset_token_is_single_use(self, client: TestClient, signup, csrf, mailer) -> None:
        signup()
        client.post("/api/v1/auth/logout", headers=csrf())
        client.post("/api/v1/auth/forgot-password", json={"email": "alice@example.com"})
        token = _token_from(mailer.sent[-1])
        body = {"token": token, "new_password": "a-brand-new-password"}
        assert client.post("/api/v1/auth/reset-password", json=body).status_code == 200
        again = client.post("/api/v1/auth/reset-password", json=body)
        assert again.status_code == 400
        assert again.json()["error"]["code"] == "token_already_used"

    def test_unknown_reset_token(self, client: TestClient) -> None:
        resp = client.post("/api/v1/auth/reset-password", json={"token": "nope", "new_password": "whatever-123"})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_token"


class TestProfile:
    def test_defaults(self, client: TestClient, signup) -> None:
        signup()
        assert client.get("/api/v1/me/profile").json() == {
            "display_name": "",
            "gender": None,
            "sexual_pref": None,
            "bio": "",
            "birthdate": None,
            "fame_rating": 0,
        }

    def test_partial_update(self, client: TestClient, signup, csrf) -> None:
        signup()
        client.patch("/api/v1/me/profile", json={"bio": "hi", "gender": "female"}, headers=csrf())
        resp = client.patch("/api/v1/me/profile", json={"display_name": "Alice"}, headers=csrf())
        assert resp.status_code == 200
        data = resp.json()
        assert (data["bio"], data["gender"], data["display_name"]) == ("hi", "female", "Alice")

    def test_empty_patch_is_noop(self, client: TestClient, signup, csrf) -> None:
        signup()
        resp = client.patch("/api/v1/me/profile", json={}, headers=csrf())
        assert resp.status_code == 200
        assert resp.json()["bio"] == ""

    @pytest.mark.parametrize(
        "body",
        [{"fame_rating": 101}, {"gender": "robot"}, {"birthdate": "01/02/1990"}, {"bio": "x" * 501}],
    )
    def test_invalid_patch(self, client: TestClient, signup, csrf, body: dict) -> None:
        signup()
        resp = client.patch("/api/v1/me/profile", json=body, headers=csrf())
        assert resp.status_code == 422

    def test_public_profile_hides_email(self, client: TestClient, signup, csrf) -> None:
        signup("alice")
        client.patch("/api/v1/me/profile", json={"bio": "about alice"}, headers=csrf())
        signup("bob")
        resp = client.get("/api/v1/users/alice")
        assert resp.status_code == 200
        data = resp.json()
        assert data["username"] == "alice"
        assert data["profile"]["bio"] == "about alice"
        assert "alice@example.com" not in resp.text

    def test_public_profile_unknown_user(self, client: TestClient, signup) -> None:
        signup()
        resp = client.get("/api/v1/users/nobody")
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "user_not_found"

    def test_public_profile_is_anonymous(self, client: TestClient, signup) -> None:
        signup("bob")
        client.cookies.clear()
        resp = client.get("/api/v1/users/bob")
        assert resp.status_code == 200, resp.text
        assert resp.json()["username"] == "bob"
        assert resp.json()["avatar"] is None
        assert "bob@example.com" not in resp.text

    def test_anonymous_unknown_user(self, client: TestClient) -> None:
        resp = client.get("/api/v1/users/nobody")
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "user_not_found"
