"""Bearer token verification and the error body shape."""

import logging

from config import Settings
from main import create_app


def test_missing_header_is_unauthenticated(client):
    response = client.get("/users/role")
    assert response.status_code == 401
    assert response.json() == {"success": False, "message": "Unauthorized Access!"}


def test_malformed_token_is_unauthenticated(client):
    response = client.get("/users/role", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert response.json()["success"] is False


def test_expired_token_is_unauthenticated(client, make_token):
    token = make_token({"sub": "u1", "email": "a@x.com"}, expires_minutes=-5)
    response = client.get("/users/role", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


def test_token_signed_with_other_secret_is_rejected(client, make_token):
    forged = make_token({"sub": "u1", "email": "a@x.com"}, secret="other")
    response = client.get("/users/role", headers={"Authorization": f"Bearer {forged}"})
    assert response.status_code == 401


def test_token_without_email_is_rejected(client, make_token):
    token = make_token({"sub": "u1"})
    response = client.get("/users/role", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


def test_valid_token_resolves_caller(client, auth_headers, make_account):
    make_account("a@x.com")
    response = client.get("/users/role", headers=auth_headers("a@x.com"))
    assert response.status_code == 200
    assert response.json()["role"] == "user"
    assert response.json()["status"] == "active"


def test_default_secret_is_reported_at_startup(db, processor, caplog):
    with caplog.at_level(logging.WARNING, logger="main"):
        create_app(Settings(), db=db, processor=processor)
    assert "JWT_SECRET is not set" in caplog.text


def test_configured_secret_is_not_reported(db, processor, settings, caplog):
    with caplog.at_level(logging.WARNING, logger="main"):
        create_app(settings, db=db, processor=processor)
    assert "JWT_SECRET" not in caplog.text
