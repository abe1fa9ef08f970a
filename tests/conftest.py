# tests/conftest.py

import os
import tempfile

# configuration is read at import time, so it has to be in place first
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["AVATAR_DIR"] = tempfile.mkdtemp(prefix="avatars-")
os.environ["FRONTEND_URL"] = "http://frontend.test"
os.environ["PUBLIC_BASE_URL"] = "http://api.test"

import pytest
from fastapi.testclient import TestClient

from database import Base, engine
from main import app


@pytest.fixture(autouse=True)
def fresh_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture()
def client() -> TestClient:
    return TestClient(app)


@pytest.fixture()
def make_user(client):
    """Sign up a user through the API and return its auth headers."""

    def _make(name="Alice Example", email="alice@example.com", password="secret123"):
        resp = client.post("/api/auth/signup", json={"name": name, "email": email, "password": password})
        assert resp.status_code == 201, resp.text
        return {"Authorization": f"Bearer {resp.json()['token']}"}

    return _make


@pytest.fixture()
def auth_headers(make_user):
    return make_user()
