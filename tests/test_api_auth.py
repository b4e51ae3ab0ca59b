# tests/test_api_auth.py

import logging
from datetime import datetime, timedelta, timezone

import jwt

from app.config import AUTH_SECRET, JWT_ALGORITHM
from app.models.user import User


def test_sign_up_returns_token_and_user(api) -> None:
    response = api.post("/auth/sign-up", json={"email": "Ana@Example.com", "password": "secret123"})

    assert response.status_code == 201
    body = response.json()
    assert body["token"]
    assert body["user"]["email"] == "ana@example.com"


def test_sign_up_rejects_duplicates(api, sign_up) -> None:
    sign_up("ana@example.com")

    response = api.post("/auth/sign-up", json={"email": "ana@example.com", "password": "secret123"})

    assert response.status_code == 400
    assert response.json()["field"] == "email"
    assert "already exists" in response.json()["message"]


def test_sign_up_rejects_short_password(api) -> None:
    response = api.post("/auth/sign-up", json={"email": "ana@example.com", "password": "123"})
    assert response.status_code == 400
    assert response.json()["field"] == "password"


def test_sign_up_rejects_invalid_email(api) -> None:
    response = api.post("/auth/sign-up", json={"email": "not-an-email", "password": "secret123"})
    assert response.status_code == 400
    assert response.json()["field"] == "email"


def test_sign_in(api, sign_up) -> None:
    _, user = sign_up("ana@example.com", "secret123")

    response = api.post("/auth/sign-in", json={"email": "ana@example.com", "password": "secret123"})

    assert response.status_code == 200
    assert response.json()["user"] == user


def test_sign_in_with_wrong_password(api, sign_up) -> None:
    sign_up("ana@example.com", "secret123")

    response = api.post("/auth/sign-in", json={"email": "ana@example.com", "password": "wrong-one"})

    assert response.status_code == 401
    assert response.json()["message"] == "Invalid email or password"


def test_me(api, sign_up) -> None:
    headers, user = sign_up()

    assert api.get("/auth/me", headers=headers).json() == user
    assert api.get("/auth/me").status_code == 401


def test_expired_token_is_rejected(api, sign_up) -> None:
    _, user = sign_up()
    past = datetime.now(timezone.utc) - timedelta(days=1)
    token = jwt.encode({"sub": user["id"], "exp": past}, AUTH_SECRET, algorithm=JWT_ALGORITHM)

    response = api.get("/auth/me", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401
    assert response.json()["message"] == "Token has expired"


def test_update_password(api, sign_up) -> None:
    headers, _ = sign_up("ana@example.com", "secret123")

    response = api.put("/auth/password", json={"password": "brand-new"}, headers=headers)
    assert response.status_code == 200

    old = api.post("/auth/sign-in", json={"email": "ana@example.com", "password": "secret123"})
    new = api.post("/auth/sign-in", json={"email": "ana@example.com", "password": "brand-new"})
    assert old.status_code == 401
    assert new.status_code == 200


def test_sign_out(api, auth_headers) -> None:
    response = api.post("/auth/sign-out", headers=auth_headers)
    assert response.json() == {"success": True, "message": "Signed out"}


def test_concurrent_duplicate_sign_up_is_rejected(api, sign_up, monkeypatch) -> None:
    sign_up("ana@example.com")
    # The other request registered the address after this one looked it up
    monkeypatch.setattr(User, "find_by_email", classmethod(lambda cls, session, email: None))

    response = api.post("/auth/sign-up", json={"email": "ana@example.com", "password": "secret123"})

    assert response.status_code == 400
    assert response.json()["field"] == "email"
    monkeypatch.undo()
    assert api.post("/auth/sign-in", json={"email": "ana@example.com", "password": "secret123"}).status_code == 200


def request_reset_token(api, caplog, email: str = "ana@example.com") -> str:
    """Request a password reset and read the issued token from the log."""
    caplog.clear()
    with caplog.at_level(logging.INFO, logger="app.routers.auth"):
        response = api.post("/auth/password-reset", json={"email": email})
    assert response.status_code == 200
    messages = [record.getMessage() for record in caplog.records if "reset token: " in record.getMessage()]
    assert len(messages) == 1
    return messages[0].split("reset token: ")[1]


def test_password_reset_flow(api, sign_up, caplog) -> None:
    _, user = sign_up("ana@example.com", "secret123")
    token = request_reset_token(api, caplog, "Ana@Example.com")

    response = api.post("/auth/password-reset/confirm", json={"token": token, "password": "recovered"})

    assert response.status_code == 200
    assert response.json()["user"] == user
    assert api.get("/auth/me", headers={"Authorization": f"Bearer {response.json()['token']}"}).json() == user
    old = api.post("/auth/sign-in", json={"email": "ana@example.com", "password": "secret123"})
    new = api.post("/auth/sign-in", json={"email": "ana@example.com", "password": "recovered"})
    assert old.status_code == 401
    assert new.status_code == 200


def test_password_reset_token_works_once(api, sign_up, caplog) -> None:
    sign_up("ana@example.com", "secret123")
    token = request_reset_token(api, caplog)
    assert api.post("/auth/password-reset/confirm", json={"token": token, "password": "recovered"}).status_code == 200

    again = api.post("/auth/password-reset/confirm", json={"token": token, "password": "another-one"})

    assert again.status_code == 401
    assert again.json()["message"] == "Reset token is no longer valid"


def test_password_reset_for_unknown_address_looks_the_same(api, sign_up, caplog) -> None:
    sign_up("ana@example.com")

    with caplog.at_level(logging.INFO, logger="app.routers.auth"):
        known = api.post("/auth/password-reset", json={"email": "ana@example.com"})
        unknown = api.post("/auth/password-reset", json={"email": "nobody@example.com"})

    assert known.json() == unknown.json()
    assert len([record for record in caplog.records if "reset token: " in record.getMessage()]) == 1


def test_reset_token_is_not_an_access_token(api, sign_up, caplog) -> None:
    headers, _ = sign_up("ana@example.com")
    token = request_reset_token(api, caplog)

    response = api.get("/auth/me", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401
    assert api.post("/auth/password-reset/confirm", json={"token": headers["Authorization"][7:], "password": "recovered"}).status_code == 401


def test_password_reset_confirm_checks_strength(api, sign_up, caplog) -> None:
    sign_up("ana@example.com")
    token = request_reset_token(api, caplog)

    response = api.post("/auth/password-reset/confirm", json={"token": token, "password": "123"})

    assert response.status_code == 400
    assert response.json()["field"] == "password"
