from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from vidtube.core.errors import AuthError
from vidtube.core.security import decode_access_token
from vidtube.main import create_app
from vidtube.models import Subscription


def _register(client, username: str, password: str = "password123", *, with_avatar: bool = True):
    files = {"avatar": (f"{username}.png", b"\x89PNG fake image", "image/png")} if with_avatar else None
    return client.post(
        "/api/v1/users/register",
        data={
            "fullName": f"{username.title()} Tester",
            "email": f"{username}@example.com",
            "username": username,
            "password": password,
        },
        files=files,
    )


def _login(client, username: str, password: str = "password123") -> dict[str, str]:
    response = client.post("/api/v1/users/login", json={"username": username, "password": password})
    assert response.status_code == 200
    data = response.json()["data"]
    return {"access": data["accessToken"], "refresh": data["refreshToken"]}


def _auth_headers(access_token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {access_token}"}


def test_register_returns_envelope_without_secrets(client, uploader, settings):
    response = _register(client, "alice")

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["statusCode"] == 201
    assert body["message"] == "User registered successfully"
    user = body["data"]
    assert user["username"] == "alice"
    assert user["fullName"] == "Alice Tester"
    assert user["watchHistory"] == []
    assert "passwordHash" not in user
    assert "refreshToken" not in user
    assert len(uploader.uploaded) == 1

    staged_dir = Path(settings.upload_temp_dir)
    assert not staged_dir.exists() or list(staged_dir.iterdir()) == []


def test_register_without_avatar_is_rejected(client):
    response = _register(client, "alice", with_avatar=False)

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["data"] is None
    assert body["code"] == "avatar_required"


def test_register_with_missing_field_is_rejected(client):
    response = client.post(
        "/api/v1/users/register",
        data={"email": "alice@example.com", "username": "alice", "password": "password123"},
        files={"avatar": ("alice.png", b"img", "image/png")},
    )

    assert response.status_code == 400
    assert response.json()["code"] == "fields_required"


def test_register_duplicate_username_conflicts(client):
    assert _register(client, "alice").status_code == 201

    response = client.post(
        "/api/v1/users/register",
        data={"fullName": "Other", "email": "other@example.com", "username": "ALICE", "password": "password123"},
        files={"avatar": ("a.png", b"img", "image/png")},
    )
    assert response.status_code == 409
    assert response.json()["success"] is False


def test_login_sets_http_only_secure_cookies(client):
    _register(client, "alice")

    response = client.post("/api/v1/users/login", json={"email": "alice@example.com", "password": "password123"})

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["user"]["username"] == "alice"
    assert data["accessToken"]
    assert data["refreshToken"]

    set_cookies = response.headers.get_list("set-cookie")
    access_cookie = next(cookie for cookie in set_cookies if cookie.startswith("accessToken="))
    refresh_cookie = next(cookie for cookie in set_cookies if cookie.startswith("refreshToken="))
    for cookie in (access_cookie, refresh_cookie):
        assert "HttpOnly" in cookie
        assert "Secure" in cookie


def test_login_failures_map_to_status_codes(client):
    _register(client, "alice")

    wrong_password = client.post("/api/v1/users/login", json={"username": "alice", "password": "nope"})
    assert wrong_password.status_code == 401

    unknown_user = client.post("/api/v1/users/login", json={"username": "ghost", "password": "password123"})
    assert unknown_user.status_code == 404


def test_current_user_requires_access_token(client):
    _register(client, "alice")
    tokens = _login(client, "alice")

    unauthenticated = client.get("/api/v1/users/current-user")
    assert unauthenticated.status_code == 401

    garbage = client.get("/api/v1/users/current-user", headers=_auth_headers("garbage"))
    assert garbage.status_code == 401

    response = client.get("/api/v1/users/current-user", headers=_auth_headers(tokens["access"]))
    assert response.status_code == 200
    assert response.json()["data"]["email"] == "alice@example.com"


def test_refresh_token_rotation(client):
    _register(client, "alice")
    tokens = _login(client, "alice")

    first_refresh = client.post("/api/v1/users/refresh-token", json={"refreshToken": tokens["refresh"]})
    assert first_refresh.status_code == 200
    rotated = first_refresh.json()["data"]
    assert rotated["refreshToken"] != tokens["refresh"]
    assert any(cookie.startswith("refreshToken=") for cookie in first_refresh.headers.get_list("set-cookie"))

    reused_old = client.post("/api/v1/users/refresh-token", json={"refreshToken": tokens["refresh"]})
    assert reused_old.status_code == 401
    assert reused_old.json()["code"] == "invalid_refresh_token"

    missing = client.post("/api/v1/users/refresh-token")
    assert missing.status_code == 401

    logout_response = client.post("/api/v1/users/logout", headers=_auth_headers(rotated["accessToken"]))
    assert logout_response.status_code == 200
    assert any(cookie.startswith("accessToken=") for cookie in logout_response.headers.get_list("set-cookie"))

    after_logout = client.post("/api/v1/users/refresh-token", json={"refreshToken": rotated["refreshToken"]})
    assert after_logout.status_code == 401


def test_change_password_and_update_account(client):
    _register(client, "alice")
    tokens = _login(client, "alice")
    headers = _auth_headers(tokens["access"])

    rejected = client.post(
        "/api/v1/users/change-password",
        json={"oldPassword": "wrong", "newPassword": "new-password-1"},
        headers=headers,
    )
    assert rejected.status_code == 401

    changed = client.post(
        "/api/v1/users/change-password",
        json={"oldPassword": "password123", "newPassword": "new-password-1"},
        headers=headers,
    )
    assert changed.status_code == 200
    _login(client, "alice", "new-password-1")

    empty_update = client.patch("/api/v1/users/update-account", json={}, headers=headers)
    assert empty_update.status_code == 400

    updated = client.patch("/api/v1/users/update-account", json={"fullName": "Alice Cooper"}, headers=headers)
    assert updated.status_code == 200
    assert updated.json()["data"]["fullName"] == "Alice Cooper"


def test_avatar_and_cover_image_updates(client, uploader):
    _register(client, "alice")
    headers = _auth_headers(_login(client, "alice")["access"])

    missing = client.patch("/api/v1/users/avatar", headers=headers)
    assert missing.status_code == 400

    avatar = client.patch(
        "/api/v1/users/avatar",
        files={"avatar": ("fresh.png", b"img", "image/png")},
        headers=headers,
    )
    assert avatar.status_code == 200
    assert avatar.json()["data"]["avatarUrl"].endswith("fresh.png")

    cover = client.patch(
        "/api/v1/users/cover-image",
        files={"coverImage": ("banner.png", b"img", "image/png")},
        headers=headers,
    )
    assert cover.status_code == 200
    assert cover.json()["data"]["coverImageUrl"].endswith("banner.png")

    uploader.fail = True
    failed = client.patch(
        "/api/v1/users/cover-image",
        files={"coverImage": ("banner.png", b"img", "image/png")},
        headers=headers,
    )
    assert failed.status_code == 400
    assert failed.json()["code"] == "upload_failed"


def test_channel_profile_and_history(client, app):
    alice_id = _register(client, "alice").json()["data"]["id"]
    bob_id = _register(client, "bob").json()["data"]["id"]
    bob_headers = _auth_headers(_login(client, "bob")["access"])

    with app.state.database.session() as session:
        session.add(Subscription(subscriber_id=bob_id, channel_id=alice_id))
        session.commit()

    profile = client.get("/api/v1/users/c/Alice", headers=bob_headers)
    assert profile.status_code == 200
    data = profile.json()["data"]
    assert data["subscribersCount"] == 1
    assert data["channelsSubscribedToCount"] == 0
    assert data["isSubscribed"] is True

    missing = client.get("/api/v1/users/c/ghost", headers=bob_headers)
    assert missing.status_code == 404

    history = client.get("/api/v1/users/history", headers=bob_headers)
    assert history.status_code == 200
    assert history.json()["data"] == []


def test_oversized_json_body_is_rejected(client, settings):
    padding = "x" * (settings.max_body_bytes + 1)

    response = client.post("/api/v1/users/login", json={"username": "alice", "password": padding})

    assert response.status_code == 413
    assert response.json()["code"] == "payload_too_large"


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["data"] == {"ok": True}


def test_refresh_token_read_from_cookie_and_rotated(plain_http_client):
    client = plain_http_client
    _register(client, "alice")
    tokens = _login(client, "alice")
    old_refresh = client.cookies.get("refreshToken")
    assert old_refresh == tokens["refresh"]

    refreshed = client.post("/api/v1/users/refresh-token", json={"refreshToken": "not-a-jwt"})
    assert refreshed.status_code == 200
    rotated = refreshed.json()["data"]["refreshToken"]
    assert rotated != old_refresh
    assert client.cookies.get("refreshToken") == rotated

    client.cookies.clear()
    client.cookies.set("refreshToken", old_refresh)
    reused = client.post("/api/v1/users/refresh-token")
    assert reused.status_code == 401
    assert reused.json()["code"] == "invalid_refresh_token"


def test_app_settings_drive_cookies_staging_and_tokens(settings, uploader, tmp_path):
    explicit = settings.model_copy(
        update={
            "cookie_secure": False,
            "upload_temp_dir": str(tmp_path / "explicit"),
            "access_token_secret": "explicit-access-secret",
        }
    )
    application = create_app(explicit)
    application.state.media_uploader = uploader

    with TestClient(application) as client:
        assert _register(client, "alice").status_code == 201
        response = client.post("/api/v1/users/login", json={"username": "alice", "password": "password123"})
        access_token = response.json()["data"]["accessToken"]
        current = client.get("/api/v1/users/current-user", headers=_auth_headers(access_token))

    assert uploader.uploaded[0].startswith(str(tmp_path / "explicit"))
    for cookie in response.headers.get_list("set-cookie"):
        assert "Secure" not in cookie
    assert current.status_code == 200
    assert decode_access_token(access_token, settings=explicit)["username"] == "alice"
    with pytest.raises(AuthError):
        decode_access_token(access_token)


def test_chunked_oversized_json_body_is_rejected(client, settings):
    def body():
        yield b'{"username": "alice", "password": "'
        yield b"x" * (settings.max_body_bytes + 1)
        yield b'"}'

    response = client.post(
        "/api/v1/users/login",
        content=body(),
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 413
    assert response.json()["code"] == "payload_too_large"


def test_chunked_json_body_within_limit_reaches_the_route(client):
    _register(client, "alice")

    def body():
        yield b'{"username": "alice", '
        yield b'"password": "password123"}'

    response = client.post(
        "/api/v1/users/login",
        content=body(),
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 200
    assert response.json()["data"]["user"]["username"] == "alice"
