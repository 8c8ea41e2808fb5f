"""
Auth API tests — register, login, me, bearer-token enforcement.
"""

from datetime import datetime, timedelta, timezone

import jwt

from ewc_tester.services.jwt_service import decode_access_token, generate_access_token


def test_register_returns_token_and_user(client):
    res = client.post("/api/v1/auth/register", json={
        "email": "New.User@Example.com", "password": "long-enough", "name": "New User",
    })
    assert res.status_code == 201
    body = res.get_json()
    assert body["token_type"] == "Bearer"
    assert body["user"]["email"] == "new.user@example.com"
    assert decode_access_token(body["access_token"])["sub"] == body["user"]["id"]


def test_register_duplicate_email_conflicts(client, user):
    res = client.post("/api/v1/auth/register", json={
        "email": "owner@example.com", "password": "another-pass",
    })
    assert res.status_code == 409


def test_register_validates_input(client):
    res = client.post("/api/v1/auth/register", json={"email": "not-an-email", "password": "short"})
    assert res.status_code == 400
    details = res.get_json()["details"]
    assert "password" in details


def test_login_success(client, user):
    res = client.post("/api/v1/auth/login", json={"email": "owner@example.com", "password": "correct-horse"})
    assert res.status_code == 200
    assert res.get_json()["user"]["id"] == user.id


def test_login_wrong_password(client, user):
    res = client.post("/api/v1/auth/login", json={"email": "owner@example.com", "password": "nope-nope"})
    assert res.status_code == 401


def test_login_requires_fields(client):
    res = client.post("/api/v1/auth/login", json={"email": ""})
    assert res.status_code == 400


def test_me(client, user, auth_headers):
    res = client.get("/api/v1/auth/me", headers=auth_headers)
    assert res.status_code == 200
    assert res.get_json()["email"] == "owner@example.com"


def test_protected_route_without_token(client):
    res = client.get("/api/v1/environments")
    assert res.status_code == 401
    assert res.get_json()["code"] == "ERR_UNAUTHORIZED"


def test_protected_route_with_garbage_token(client):
    res = client.get("/api/v1/environments", headers={"Authorization": "Bearer not.a.jwt"})
    assert res.status_code == 401
    assert res.get_json()["error"] == "Invalid token"


def test_expired_token_rejected(app, client, user):
    now = datetime.now(timezone.utc)
    token = jwt.encode(
        {"sub": user.id, "type": "access", "iat": now - timedelta(hours=2), "exp": now - timedelta(hours=1)},
        app.config["JWT_SECRET_KEY"] or app.config["SECRET_KEY"],
        algorithm="HS256",
    )
    res = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert res.status_code == 401
    assert res.get_json()["error"] == "Token has expired"


def test_token_for_deleted_user_rejected(client):
    token = generate_access_token("00000000-0000-0000-0000-000000000000")["access_token"]
    res = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert res.status_code == 401


def test_health_is_public(client):
    res = client.get("/api/v1/health")
    assert res.status_code == 200
    assert res.get_json()["status"] == "ok"


def test_security_headers_present(client):
    res = client.get("/api/v1/health")
    assert res.headers["X-Content-Type-Options"] == "nosniff"
    assert "default-src 'none'" in res.headers["Content-Security-Policy"]
    assert res.headers["X-Request-ID"]
