from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

import wetube.api.server as srv
from wetube.auth.config import load_auth_config
from wetube.auth.models import ProviderProfile
from wetube.auth.reconcile import reconcile_oauth_identity
from wetube.store import InMemoryUserStore, set_user_store

ALICE = {
    "name": "Alice",
    "username": "alice",
    "email": "a@x.com",
    "password": "p1",
    "password2": "p1",
    "location": "Seoul",
}


def _client() -> TestClient:
    return TestClient(srv.app)


def _join(c: TestClient, **overrides):
    return c.post("/join", json={**ALICE, **overrides}, follow_redirects=False)


def _login(c: TestClient, username: str = "alice", password: str = "p1"):
    return c.post("/login", json={"username": username, "password": password}, follow_redirects=False)


def _resp(status: int, body) -> MagicMock:
    r = MagicMock()
    r.status_code = status
    r.json.return_value = body
    return r


@pytest.fixture
def oauth_env(monkeypatch):
    monkeypatch.setenv("GH_CLIENT", "gh-client")
    monkeypatch.setenv("GH_SECRET", "gh-secret")
    monkeypatch.setenv("KAKAO_CLIENT", "kakao-client")
    load_auth_config.cache_clear()


def test_healthz() -> None:
    r = _client().get("/healthz")
    assert r.status_code == 200
    assert r.json() == {"ok": True}


def test_signup_then_login_sets_session(store) -> None:
    c = _client()
    r = _join(c)
    assert r.status_code == 302
    assert r.headers["location"] == "/login"
    assert len(store) == 1
    assert store.find_one(username="alice").social_only is False

    r = _login(c)
    assert r.status_code == 302
    assert r.headers["location"] == "/"
    assert "wetube_session=" in r.headers.get("set-cookie", "")

    r = c.get("/users/edit")
    assert r.status_code == 200
    assert r.json()["user"]["username"] == "alice"


def test_signup_errors_are_400_with_message(store) -> None:
    c = _client()
    r = _join(c, password2="nope")
    assert r.status_code == 400
    assert r.json() == {"errorMessage": "Password confirmation does not match."}
    assert len(store) == 0

    assert _join(c).status_code == 302
    r = _join(c, username="alice2")
    assert r.status_code == 400
    assert r.json() == {"errorMessage": "This username/email is already taken."}
    assert len(store) == 1


def test_login_errors(store) -> None:
    c = _client()
    _join(c)

    r = _login(c, username="ghost")
    assert r.status_code == 400
    assert r.json()["errorMessage"] == "An account with this username does not exists."

    r = _login(c, password="bad")
    assert r.status_code == 400
    assert r.json()["errorMessage"] == "Wrong password"
    assert "set-cookie" not in {k.lower() for k in r.headers.keys()}


def test_guards(store) -> None:
    c = _client()
    r = c.get("/users/edit", follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["location"] == "/login"

    _join(c)
    _login(c)
    r = c.get("/users/github/start", follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["location"] == "/"


def test_github_start_redirects_to_authorize(oauth_env) -> None:
    r = _client().get("/users/github/start", follow_redirects=False)
    assert r.status_code == 302
    loc = r.headers["location"]
    assert loc.startswith("https://github.com/login/oauth/authorize?")
    assert "allow_signup=false" in loc


def test_oauth_start_when_not_configured() -> None:
    r = _client().get("/users/kakao/start", follow_redirects=False)
    assert r.status_code == 403


def _github_get(emails):
    def _get(url, headers=None, timeout=None):
        if url.endswith("/user/emails"):
            return _resp(200, emails)
        return _resp(200, {"login": "octo", "name": "Octo", "avatar_url": "https://avatars/octo.png"})

    return _get


def test_github_finish_creates_social_user_and_session(store, oauth_env) -> None:
    emails = [{"email": "octo@x.com", "primary": True, "verified": True}]
    c = _client()
    with patch("requests.post", return_value=_resp(200, {"access_token": "gho"})):
        with patch("requests.get", side_effect=_github_get(emails)):
            r = c.get("/users/github/finish", params={"code": "abc"}, follow_redirects=False)

    assert r.status_code == 302
    assert r.headers["location"] == "/"
    user = store.find_one(email="octo@x.com")
    assert user is not None
    assert user.social_only is True
    assert user.password_hash == ""

    # Social-only accounts can't use the password form.
    r = c.get("/users/change-password", follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["location"] == "/"


def test_github_finish_without_verified_email_redirects_to_login(store, oauth_env) -> None:
    emails = [
        {"email": "octo@x.com", "primary": True, "verified": False},
        {"email": "alt@x.com", "primary": False, "verified": False},
    ]
    with patch("requests.post", return_value=_resp(200, {"access_token": "gho"})):
        with patch("requests.get", side_effect=_github_get(emails)):
            r = _client().get("/users/github/finish", params={"code": "abc"}, follow_redirects=False)

    assert r.status_code == 302
    assert r.headers["location"] == "/login"
    assert len(store) == 0


def test_github_finish_with_rejected_code_redirects_to_login(store, oauth_env) -> None:
    with patch("requests.post", return_value=_resp(200, {"error": "bad_verification_code"})):
        with patch("requests.get") as mock_get:
            r = _client().get("/users/github/finish", params={"code": "stale"}, follow_redirects=False)
            mock_get.assert_not_called()

    assert r.status_code == 302
    assert r.headers["location"] == "/login"
    assert len(store) == 0


def test_kakao_finish_returns_existing_user(store, oauth_env) -> None:
    existing = reconcile_oauth_identity(
        store, ProviderProfile(provider="github", name="Bee", handle="bee", avatar_url=None, email="b@y.com")
    )
    payload = {
        "kakao_account": {
            "email": "b@y.com",
            "is_email_valid": True,
            "is_email_verified": True,
            "profile": {"nickname": "bee-kakao", "profile_image_url": "https://k.png"},
        }
    }
    c = _client()
    with patch("requests.post", return_value=_resp(200, {"access_token": "kt"})):
        with patch("requests.get", return_value=_resp(200, payload)):
            r = c.get("/users/kakao/finish", params={"code": "kc"}, follow_redirects=False)

    assert r.status_code == 302
    assert r.headers["location"] == "/"
    assert len(store) == 1
    assert c.get("/users/edit").json()["user"]["id"] == existing.id


def test_edit_profile_refreshes_session(store) -> None:
    c = _client()
    _join(c)
    _login(c)

    form = {"name": "Alice Kim", "email": "a@x.com", "username": "alice", "location": "Jeju", "avatarUrl": "up/a.png"}
    r = c.post("/users/edit", json=form, follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["location"] == "/users/edit"

    snapshot = c.get("/users/edit").json()["user"]
    assert snapshot["name"] == "Alice Kim"
    assert snapshot["avatarUrl"] == "up/a.png"


def test_edit_profile_to_other_users_email_is_conflict(store) -> None:
    c = _client()
    _join(c, username="bob", email="b@y.com")
    _join(c)
    _login(c)

    r = c.post(
        "/users/edit",
        json={"name": "Alice", "email": "b@y.com", "username": "alice", "location": "Seoul"},
        follow_redirects=False,
    )
    assert r.status_code == 400
    assert r.json() == {"errorMessage": "This email/username already exists."}
    assert store.find_one(username="alice").email == "a@x.com"


def test_change_password_ends_session(store) -> None:
    c = _client()
    _join(c)
    _login(c)
    old_hash = store.find_one(username="alice").password_hash

    r = c.post(
        "/users/change-password",
        json={"old": "p1", "newPassword": "p1", "newPasswordConfirmation": "p1"},
        follow_redirects=False,
    )
    assert r.status_code == 400
    assert r.json()["errorMessage"] == "The old password equals new password"
    assert store.find_one(username="alice").password_hash == old_hash

    r = c.post(
        "/users/change-password",
        json={"old": "p1", "newPassword": "p2", "newPasswordConfirmation": "p2"},
        follow_redirects=False,
    )
    assert r.status_code == 302
    assert r.headers["location"] == "/login"
    assert "max-age=0" in r.headers.get("set-cookie", "").lower()
    assert store.find_one(username="alice").password_hash != old_hash

    c.cookies.clear()
    assert _login(c, password="p1").status_code == 400
    assert _login(c, password="p2").status_code == 302


def test_cookie_from_before_password_change_is_rejected(store) -> None:
    c = _client()
    _join(c)
    _login(c)
    stale = c.cookies.get("wetube_session")
    assert stale

    r = c.post(
        "/users/change-password",
        json={"old": "p1", "newPassword": "p2", "newPasswordConfirmation": "p2"},
        follow_redirects=False,
    )
    assert r.status_code == 302

    replay = {"Cookie": f"wetube_session={stale}"}
    other = _client()
    r = other.get("/users/edit", headers=replay, follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["location"] == "/login"

    r = other.post(
        "/users/edit",
        json={"name": "Mallory", "email": "m@evil.com", "username": "alice"},
        headers=replay,
        follow_redirects=False,
    )
    assert r.status_code == 302
    assert r.headers["location"] == "/login"
    assert store.find_one(username="alice").email == "a@x.com"


def test_cookie_for_user_missing_from_store_is_anonymous(store) -> None:
    c = _client()
    _join(c)
    _login(c)
    assert c.get("/users/edit").status_code == 200

    set_user_store(InMemoryUserStore())
    r = c.get("/users/edit", follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["location"] == "/login"


def test_logout_clears_cookie(store) -> None:
    c = _client()
    _join(c)
    _login(c)
    r = c.get("/users/logout", follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["location"] == "/"
    assert "max-age=0" in r.headers.get("set-cookie", "").lower()


def test_view_profile(store) -> None:
    c = _client()
    _join(c)
    user = store.find_one(username="alice")

    r = c.get(f"/users/{user.id}")
    assert r.status_code == 200
    body = r.json()
    assert body["user"]["username"] == "alice"
    assert "password_hash" not in body["user"]

    assert c.get("/users/" + "0" * 24).status_code == 404
    assert c.get("/users/not-hex").status_code == 404
