from dataclasses import replace
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import mongomock
import pytest
from fastapi.testclient import TestClient
from jose import jwt

from config import Settings
from main import create_app
from schemas import USERS


def create_jwt(settings, payload, expires_minutes=None):
    """Sign a token the way the identity provider would."""
    now = datetime.now(timezone.utc)
    minutes = settings.token_expire_min if expires_minutes is None else expires_minutes
    to_encode = {"exp": now + timedelta(minutes=minutes), "iat": now, **payload}
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_alg)


@pytest.fixture
def settings():
    return Settings(jwt_secret="test-secret", client_domain="http://client.test")


@pytest.fixture
def db():
    return mongomock.MongoClient()["LocalChefBazaarTest"]


@pytest.fixture
def processor():
    """Stand-in for the Stripe wrapper; tests set return values per call."""
    return MagicMock()


@pytest.fixture
def client(settings, db, processor):
    return TestClient(create_app(settings, db=db, processor=processor))


@pytest.fixture
def make_token(settings):
    def _token(payload, expires_minutes=None, secret=None):
        signing = replace(settings, jwt_secret=secret) if secret else settings
        return create_jwt(signing, payload, expires_minutes)
    return _token


@pytest.fixture
def auth_headers(settings):
    def _headers(email, uid=None):
        token = create_jwt(settings, {"sub": uid or f"uid-{email}", "email": email})
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
def make_account(db):
    def _make(email, role="user", status="active", chef_id=None):
        doc = {
            "uid": f"uid-{email}",
            "email": email,
            "displayName": email.split("@")[0],
            "role": role,
            "status": status,
            "createdAt": datetime.now(timezone.utc),
        }
        if chef_id:
            doc["chefId"] = chef_id
        db[USERS].insert_one(doc)
        return doc
    return _make
